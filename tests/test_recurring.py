"""
Tests for recurring schedules and their materialization.
"""

import copy
from datetime import date
from decimal import Decimal

import pytest

from conftest import USER_ID, FailingStore, balance_of
from ledgerbook.config import LedgerSettings
from ledgerbook.errors import ScheduleConsistencyError, ValidationError
from ledgerbook.ledger import collection_path, next_run_after
from ledgerbook.models.ledger import (
    AccountType,
    RecurringFrequency,
    SimpleTransactionIntent,
    TransactionType,
)
from ledgerbook.orchestrator import Ledger
from ledgerbook.services.storage import InMemoryDocumentStore


class StaleScheduleStore(InMemoryDocumentStore):
    """Serves a frozen copy of the schedules, like a session that read them earlier."""

    def __init__(self):
        super().__init__()
        self.frozen = None

    async def query(self, collection, filters=None, order_by=None, descending=False, limit=None):
        if self.frozen is not None and collection.endswith("/recurring"):
            return copy.deepcopy(self.frozen)
        return await super().query(collection, filters, order_by, descending, limit)


async def make_rent_schedule(ledger, book_id, accounts, start=date(2024, 1, 1),
                             frequency=RecurringFrequency.MONTHLY):
    template = await ledger.recurring.template_from_intent(
        book_id,
        SimpleTransactionIntent(
            description="Rent",
            amount=Decimal("100"),
            from_account_id=accounts["cash"].id,
            to_account_id=accounts["food"].id,
        ),
    )
    return await ledger.recurring.create(book_id, USER_ID, frequency, 1, start, template)


async def setup_book(ledger):
    book = await ledger.books.create_book(USER_ID, "Personal")
    cash = await ledger.books.create_account(
        book.id, USER_ID, "Cash", AccountType.ASSET, balance=Decimal("500")
    )
    food = await ledger.books.create_account(book.id, USER_ID, "Food", AccountType.EXPENSE)
    return book, {"cash": cash, "food": food}


class TestNextRunAfter:
    """Tests for schedule arithmetic."""

    def test_month_end_clamps(self):
        assert next_run_after(date(2024, 1, 31), "monthly") == date(2024, 2, 29)

    def test_months_advance_from_the_clamped_date(self):
        assert next_run_after(date(2024, 2, 29), RecurringFrequency.MONTHLY) == date(2024, 3, 29)

    def test_leap_day_yearly(self):
        assert next_run_after(date(2024, 2, 29), "yearly") == date(2025, 2, 28)

    def test_weekly_interval(self):
        assert next_run_after(date(2024, 1, 1), "weekly", 2) == date(2024, 1, 15)

    def test_daily(self):
        assert next_run_after(date(2024, 12, 31), "daily") == date(2025, 1, 1)

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            next_run_after(date(2024, 1, 1), "daily", 0)


class TestScheduleManagement:
    """Tests for creating and editing schedules."""

    async def test_template_from_intent(self, ledger, book, accounts):
        schedule = await make_rent_schedule(ledger, book.id, accounts)

        assert schedule.next_run == date(2024, 1, 1)
        assert schedule.active
        assert schedule.template.type == TransactionType.EXPENSE
        assert [leg.value for leg in schedule.template.splits] == [Decimal("-100"), Decimal("100")]

    async def test_invalid_intent_is_rejected(self, ledger, book, accounts):
        with pytest.raises(ValidationError):
            await ledger.recurring.template_from_intent(
                book.id,
                SimpleTransactionIntent(
                    amount=Decimal("-5"),
                    from_account_id=accounts["cash"].id,
                    to_account_id=accounts["food"].id,
                ),
            )

    async def test_overlong_description_is_rejected(self, ledger, book, accounts):
        with pytest.raises(ValidationError):
            await ledger.recurring.template_from_intent(
                book.id,
                SimpleTransactionIntent(
                    description="y" * 600,
                    amount=Decimal("5"),
                    from_account_id=accounts["cash"].id,
                    to_account_id=accounts["food"].id,
                ),
            )

    async def test_next_run_before_start_is_rejected(self, ledger, book, accounts):
        schedule = await make_rent_schedule(ledger, book.id, accounts)
        with pytest.raises(ValidationError):
            await ledger.recurring.update(book.id, schedule.id, next_run=date(2023, 12, 1))

    async def test_update_frequency(self, ledger, book, accounts):
        schedule = await make_rent_schedule(ledger, book.id, accounts)
        updated = await ledger.recurring.update(book.id, schedule.id, frequency="weekly", interval=2)

        stored = await ledger.recurring.get(book.id, schedule.id)
        assert updated.frequency == RecurringFrequency.WEEKLY
        assert stored.interval == 2

    async def test_list_active_only(self, ledger, book, accounts):
        first = await make_rent_schedule(ledger, book.id, accounts)
        await make_rent_schedule(ledger, book.id, accounts, start=date(2024, 2, 1))
        await ledger.recurring.pause(book.id, first.id)

        assert len(await ledger.recurring.list(book.id)) == 2
        assert len(await ledger.recurring.list(book.id, active_only=True)) == 1


class TestProcessing:
    """Tests for materializing due occurrences."""

    async def test_catches_up_every_missed_month(self, ledger, store, book, accounts):
        schedule = await make_rent_schedule(ledger, book.id, accounts)

        report = await ledger.process_recurring(book.id, today=date(2024, 4, 15))

        assert report.materialized_count == 4
        assert [m.occurrence for m in report.materialized] == [
            date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1),
        ]
        stored = await ledger.recurring.get(book.id, schedule.id)
        assert stored.next_run == date(2024, 5, 1)
        assert stored.last_run == date(2024, 4, 1)

        assert await balance_of(ledger, book.id, accounts["cash"].id) == Decimal("100")
        assert await balance_of(ledger, book.id, accounts["food"].id) == Decimal("400")

        transaction = await ledger.transactions.get(
            book.id, ledger.recurring.occurrence_id(schedule.id, date(2024, 3, 1))
        )
        assert transaction.date == date(2024, 3, 1)
        assert transaction.notes == "Recurring Transaction"

    async def test_rerun_materializes_nothing(self, ledger, book, accounts):
        await make_rent_schedule(ledger, book.id, accounts)
        await ledger.process_recurring(book.id, today=date(2024, 4, 15))

        report = await ledger.process_recurring(book.id, today=date(2024, 4, 15))

        assert report.materialized_count == 0
        assert len(await ledger.transactions.list(book.id)) == 4
        assert await ledger.queries.reconcile(book.id) == []

    async def test_future_schedule_is_not_due(self, ledger, book, accounts):
        await make_rent_schedule(ledger, book.id, accounts, start=date(2024, 6, 1))
        report = await ledger.process_recurring(book.id, today=date(2024, 4, 15))
        assert report.materialized_count == 0

    async def test_paused_schedule_is_skipped_until_resumed(self, ledger, book, accounts):
        schedule = await make_rent_schedule(ledger, book.id, accounts)
        await ledger.recurring.pause(book.id, schedule.id)

        report = await ledger.process_recurring(book.id, today=date(2024, 2, 15))
        assert report.materialized_count == 0

        await ledger.recurring.resume(book.id, schedule.id)
        report = await ledger.process_recurring(book.id, today=date(2024, 2, 15))
        assert report.materialized_count == 2

    async def test_invalid_template_is_skipped_without_advancing(self, ledger, book, accounts):
        schedule = await make_rent_schedule(ledger, book.id, accounts)
        await ledger.delete_account(book.id, accounts["food"].id)

        report = await ledger.process_recurring(book.id, today=date(2024, 4, 15))

        assert report.materialized_count == 0
        assert [s.recurring_id for s in report.skipped] == [schedule.id]
        stored = await ledger.recurring.get(book.id, schedule.id)
        assert stored.next_run == date(2024, 1, 1)

    async def test_unreadable_schedule_does_not_block_the_others(self, ledger, store, book, accounts):
        broken = await make_rent_schedule(ledger, book.id, accounts)
        healthy = await make_rent_schedule(ledger, book.id, accounts)
        path = collection_path(book.id, "recurring")
        doc = await store.get(path, broken.id)
        doc["template"]["description"] = "y" * 600
        await store.commit(store.batch().set(path, broken.id, doc))

        report = await ledger.process_recurring(book.id, today=date(2024, 2, 15))

        assert [s.recurring_id for s in report.skipped] == [broken.id]
        assert {m.recurring_id for m in report.materialized} == {healthy.id}
        assert report.materialized_count == 2
        assert (await store.get(path, broken.id))["next_run"] == "2024-01-01"
        assert await ledger.queries.reconcile(book.id) == []

    async def test_catch_up_limit(self):
        ledger = Ledger(
            InMemoryDocumentStore(),
            LedgerSettings(seed_default_data=False, max_catch_up_occurrences=3),
        )
        book, accounts = await setup_book(ledger)
        schedule = await make_rent_schedule(
            ledger, book.id, accounts, frequency=RecurringFrequency.DAILY
        )

        report = await ledger.process_recurring(book.id, today=date(2024, 1, 10))

        assert report.materialized_count == 3
        assert len(report.skipped) == 1
        stored = await ledger.recurring.get(book.id, schedule.id)
        assert stored.next_run == date(2024, 1, 4)

    async def test_concurrent_session_is_a_quiet_conflict(self):
        store = StaleScheduleStore()
        ledger = Ledger(store, LedgerSettings(seed_default_data=False))
        book, accounts = await setup_book(ledger)
        schedule = await make_rent_schedule(ledger, book.id, accounts)
        stale = await store.query(collection_path(book.id, "recurring"))

        await ledger.process_recurring(book.id, today=date(2024, 4, 15))
        store.frozen = stale
        report = await ledger.process_recurring(book.id, today=date(2024, 4, 15))

        assert report.materialized_count == 0
        assert report.conflicts == [schedule.id]
        assert await balance_of(ledger, book.id, accounts["cash"].id) == Decimal("100")

    async def test_commit_failure_raises_with_report(self):
        store = FailingStore(fail_when=lambda batch: any(
            op.collection.endswith("/recurring") for op in batch.operations
        ))
        ledger = Ledger(store, LedgerSettings(seed_default_data=False))
        book, accounts = await setup_book(ledger)
        schedule = await make_rent_schedule(ledger, book.id, accounts)
        store.failing = True

        with pytest.raises(ScheduleConsistencyError) as exc:
            await ledger.process_recurring(book.id, today=date(2024, 4, 15))

        report = exc.value.report
        assert report.materialized_count == 0
        assert report.failed[0].recurring_id == schedule.id
        assert report.failed[0].occurrence == date(2024, 1, 1)

        store.failing = False
        stored = await ledger.recurring.get(book.id, schedule.id)
        assert stored.next_run == date(2024, 1, 1)
        assert await ledger.transactions.list(book.id) == []
        events = store.dump()["audit_log"].values()
        assert any(e["event_type"] == "schedule_consistency_failed" for e in events)
