"""
Tests for Ledgerbook

Test strategy:
1. Unit tests for individual components (models, rules, validators)
2. Integration tests for flows over the in-memory store
3. No real API calls in tests (use fakes)
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledgerbook.audit import AuditLogger
from ledgerbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from ledgerbook.models.ledger import (
    AccountActivity,
    AccountType,
    ActivityType,
    Book,
    LegacyTransaction,
    RecurringTemplate,
    RecurringTransaction,
    Split,
    SplitEntry,
    SplitTransaction,
    SplitType,
    TemplateSplit,
    TransactionDetails,
    TransactionType,
    parse_transaction_document,
)
from ledgerbook.services.storage import InMemoryDocumentStore, StorageError


def make_split(index: int, account_id: str, account_type: AccountType, value: str) -> Split:
    return Split(
        id=f"txn-1-split-{index}",
        transaction_id="txn-1",
        account_id=account_id,
        account_path=account_id,
        account_type=account_type,
        value=Decimal(value),
    )


class TestLedgerModels:
    """Tests for ledger Pydantic models."""

    def test_book_strips_whitespace(self):
        book = Book(user_id="user-1", name="  Personal  ")
        assert book.name == "Personal"
        assert book.id.startswith("book-")

    def test_book_settings_defaults(self):
        settings = Book(user_id="user-1", name="Personal").settings
        assert settings.enable_budgets is True
        assert settings.enable_reconciliation is False
        assert settings.fiscal_year_start is None

    def test_transaction_details_defaults_to_today(self):
        details = TransactionDetails()
        assert details.date == date.today()
        assert details.description == ""
        assert details.currency is None

    def test_recurring_template_rejects_long_description(self):
        with pytest.raises(ValueError):
            RecurringTemplate(
                description="y" * 501,
                amount=Decimal("10"),
                type=TransactionType.EXPENSE,
                splits=[
                    TemplateSplit(account_id="cash", account_path="Cash",
                                  account_type=AccountType.ASSET, value=Decimal("-10")),
                    TemplateSplit(account_id="food", account_path="Food",
                                  account_type=AccountType.EXPENSE, value=Decimal("10")),
                ],
            )

    def test_split_transaction_must_balance(self):
        with pytest.raises(ValueError):
            SplitTransaction(
                id="txn-1",
                book_id="book-1",
                user_id="user-1",
                date=date(2024, 1, 1),
                splits=[
                    make_split(1, "cash", AccountType.ASSET, "-100"),
                    make_split(2, "food", AccountType.EXPENSE, "90"),
                ],
            )

    def test_split_transaction_needs_two_splits(self):
        with pytest.raises(ValueError):
            SplitTransaction(
                id="txn-1",
                book_id="book-1",
                user_id="user-1",
                date=date(2024, 1, 1),
                splits=[make_split(1, "cash", AccountType.ASSET, "0")],
            )

    def test_split_entry_signed_value(self):
        assert SplitEntry(account_id="a", amount=Decimal("5"), type=SplitType.DEBIT).signed_value == 5
        assert SplitEntry(account_id="a", amount=Decimal("5"), type=SplitType.CREDIT).signed_value == -5

    def test_activity_balance_delta(self):
        activity = AccountActivity(
            book_id="book-1",
            account_id="cash",
            account_name="Cash",
            type=ActivityType.BALANCE_UPDATE,
            changes={"balance": {"old": "500", "new": "420.50"}},
        )
        assert activity.balance_delta == Decimal("-79.50")

    def test_activity_without_balance_change(self):
        activity = AccountActivity(
            book_id="book-1",
            account_id="cash",
            account_name="Cash",
            type=ActivityType.DETAILS_UPDATE,
            changes={"name": {"old": "Cash", "new": "Wallet"}},
        )
        assert activity.balance_delta == 0

    def test_recurring_dates(self):
        template = RecurringTemplate(
            amount=Decimal("10"),
            type=TransactionType.EXPENSE,
            splits=[
                TemplateSplit(account_id="cash", account_path="Cash",
                              account_type=AccountType.ASSET, value=Decimal("-10")),
                TemplateSplit(account_id="food", account_path="Food",
                              account_type=AccountType.EXPENSE, value=Decimal("10")),
            ],
        )
        with pytest.raises(ValueError):
            RecurringTransaction(
                book_id="book-1",
                user_id="user-1",
                frequency="monthly",
                start_date=date(2024, 2, 1),
                next_run=date(2024, 1, 1),
                template=template,
            )


class TestStoredTransactionParsing:
    """Tests for the tagged stored-transaction variants."""

    def test_untagged_flat_record_is_legacy(self):
        stored = parse_transaction_document({
            "id": "txn-old",
            "book_id": "book-1",
            "user_id": "user-1",
            "date": "2023-05-01",
            "account_id": "cash",
            "amount": "75",
            "type": "expense",
        })
        assert isinstance(stored, LegacyTransaction)
        assert stored.amount == Decimal("75")

    def test_split_record_round_trips(self):
        transaction = SplitTransaction(
            id="txn-1",
            book_id="book-1",
            user_id="user-1",
            date=date(2024, 1, 1),
            splits=[
                make_split(1, "cash", AccountType.ASSET, "-100"),
                make_split(2, "food", AccountType.EXPENSE, "100"),
            ],
        )
        stored = parse_transaction_document(transaction.model_dump(mode="json"))
        assert stored == transaction


class TestAuditModels:
    """Tests for audit-related models."""

    def test_transaction_created(self):
        event = AuditEventBuilder.transaction_created("book-1", "txn-1", "Lunch", 2)

        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.entity_id == "txn-1"
        assert event.details == {"split_count": 2}
        assert event.is_user_action

    def test_schedule_consistency_failed_is_an_error(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.schedule_consistency_failed(
            "book-1", "rec-1", date(2024, 1, 1), "backend unavailable", correlation_id
        )

        assert event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL)
        assert event.correlation_id == correlation_id
        assert event.error_message == "backend unavailable"

    def test_to_document_is_json_ready(self):
        event = AuditEventBuilder.book_created("book-1", "Personal", True)
        document = event.to_document()

        assert document["id"] == str(event.event_id)
        assert document["event_type"] == "book_created"
        assert isinstance(document["timestamp"], str)

    def test_to_log_dict(self):
        event = AuditEvent(event_type=AuditEventType.SYSTEM_ERROR, description="x")
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "system_error"
        assert log_dict["correlation_id"] is None


class FailingAuditStore(InMemoryDocumentStore):
    async def commit(self, batch):
        raise StorageError("audit sheet unavailable")


class TestAuditLogger:
    """Tests for audit persistence."""

    async def test_persists_to_the_audit_collection(self):
        store = InMemoryDocumentStore()
        logger = AuditLogger(store)
        event = AuditEventBuilder.book_deleted("book-1", 12)

        assert await logger.log(event)
        assert str(event.event_id) in store.dump()["audit_log"]

    async def test_storage_failure_is_reported_not_raised(self):
        logger = AuditLogger(FailingAuditStore())
        assert not await logger.log(AuditEventBuilder.book_deleted("book-1", 1))

    async def test_local_only(self):
        assert await AuditLogger().log(AuditEventBuilder.book_seeded("book-1", 20, 0))
