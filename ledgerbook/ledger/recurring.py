"""
Recurring transactions.

A schedule is a template plus a cursor (`next_run`) that only moves
forward. Processing materializes every due occurrence, dated at the
scheduled date, and catches up one occurrence at a time until the cursor
is past "today".

Each occurrence is ONE commit: transaction header, splits, balance
increments and the schedule advance, guarded by the precondition that
`next_run` still holds the value that was read. An occurrence can
therefore never be materialized without advancing the schedule, nor
twice by two sessions processing the same book.
"""

from datetime import date
from typing import Any, Optional, Union

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ledgerbook.accounting.entries import LedgerEntryFactory
from ledgerbook.audit import AuditLogger, create_correlation_id
from ledgerbook.config import LedgerSettings
from ledgerbook.errors import NotFoundError, ScheduleConsistencyError, ValidationError
from ledgerbook.ledger.base import (
    RECURRING,
    LedgerService,
    collection_path,
    to_document,
    validated,
)
from ledgerbook.ledger.transactions import TransactionStore
from ledgerbook.models.audit import AuditEventBuilder
from ledgerbook.models.ledger import (
    Account,
    RecurringFrequency,
    RecurringTemplate,
    RecurringTransaction,
    SimpleTransactionIntent,
    SplitTransaction,
    TemplateSplit,
    utc_now,
)
from ledgerbook.services.storage import (
    ConflictError,
    DocumentStore,
    DuplicateError,
    QueryFilter,
    StorageError,
)


def next_run_after(
    current: date,
    frequency: Union[RecurringFrequency, str],
    interval: int = 1,
) -> date:
    """
    Advance a schedule cursor by `interval` periods of `frequency`.

    Month and year steps clamp to the end of shorter months
    (2024-01-31 + 1 month -> 2024-02-29).
    """
    if interval < 1:
        raise ValueError("interval must be at least 1")

    frequency = RecurringFrequency(frequency)
    if frequency == RecurringFrequency.DAILY:
        return current + relativedelta(days=interval)
    if frequency == RecurringFrequency.WEEKLY:
        return current + relativedelta(weeks=interval)
    if frequency == RecurringFrequency.MONTHLY:
        return current + relativedelta(months=interval)
    return current + relativedelta(years=interval)


# =============================================================================
# PROCESSING REPORT
# =============================================================================

class MaterializedOccurrence(BaseModel):
    recurring_id: str
    transaction_id: str
    occurrence: date


class SkippedSchedule(BaseModel):
    recurring_id: str
    reason: str


class FailedOccurrence(BaseModel):
    recurring_id: str
    occurrence: date
    error: str


class RecurringRunReport(BaseModel):
    """What one processing pass did, schedule by schedule."""

    book_id: str
    today: date
    materialized: list[MaterializedOccurrence] = Field(default_factory=list)
    skipped: list[SkippedSchedule] = Field(default_factory=list)
    conflicts: list[str] = Field(
        default_factory=list,
        description="Schedules already advanced by another session during this pass"
    )
    failed: list[FailedOccurrence] = Field(default_factory=list)

    @property
    def materialized_count(self) -> int:
        return len(self.materialized)


# =============================================================================
# SCHEDULER
# =============================================================================

class RecurringScheduler(LedgerService):
    """Schedules of a book and the materialization of their due occurrences."""

    def __init__(
        self,
        store: DocumentStore,
        transactions: TransactionStore,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        factory: Optional[LedgerEntryFactory] = None,
    ):
        super().__init__(store, settings, audit_logger)
        self._transactions = transactions
        self._factory = factory or LedgerEntryFactory(self._settings.balance_tolerance)

    def _path(self, book_id: str) -> str:
        return collection_path(book_id, RECURRING)

    # -------------------------------------------------------------------------
    # Schedule management
    # -------------------------------------------------------------------------

    async def template_from_intent(
        self,
        book_id: str,
        intent: SimpleTransactionIntent,
    ) -> RecurringTemplate:
        """Build a template whose occurrences repeat a simple two-account movement."""
        accounts = await self._transactions.load_accounts(book_id)
        result = self._transactions.validator.validate_simple(intent, accounts)
        self._transactions.validator.raise_for_errors(result)

        splits = self._factory.simple_transfer(
            "template",
            accounts[intent.from_account_id],
            accounts[intent.to_account_id],
            intent.amount,
        )
        return RecurringTemplate(
            description=intent.description,
            amount=intent.amount,
            type=self._factory.infer_type(splits),
            splits=[
                TemplateSplit(
                    account_id=split.account_id,
                    account_path=split.account_path,
                    account_type=split.account_type,
                    value=split.value,
                    memo=split.memo,
                )
                for split in splits
            ],
            notes=intent.notes or "Recurring Transaction",
            currency=intent.currency,
        )

    async def create(
        self,
        book_id: str,
        user_id: str,
        frequency: Union[RecurringFrequency, str],
        interval: int,
        start_date: date,
        template: RecurringTemplate,
    ) -> RecurringTransaction:
        """
        Create an active schedule whose first occurrence is `start_date`.

        Raises:
            ValidationError: the template references unknown accounts or does not balance
        """
        accounts = await self._transactions.load_accounts(book_id)
        self._factory.from_template("template", template, accounts)

        schedule = validated(RecurringTransaction, {
            "book_id": book_id,
            "user_id": user_id,
            "frequency": frequency,
            "interval": interval,
            "start_date": start_date,
            "next_run": start_date,
            "template": template,
        }, "schedule")
        batch = self._store.batch().create(self._path(book_id), schedule.id, to_document(schedule))
        await self._commit(batch, "create_recurring", "recurring", schedule.id, book_id)
        self._logger.info(
            "recurring_created",
            book_id=book_id,
            recurring_id=schedule.id,
            frequency=schedule.frequency.value,
            interval=schedule.interval,
        )
        return schedule

    async def get(self, book_id: str, recurring_id: str) -> RecurringTransaction:
        doc = await self._store.get(self._path(book_id), recurring_id)
        if doc is None:
            raise NotFoundError(f"Recurring transaction not found: {recurring_id}")
        return RecurringTransaction.model_validate(doc)

    async def update(
        self,
        book_id: str,
        recurring_id: str,
        frequency: Optional[Union[RecurringFrequency, str]] = None,
        interval: Optional[int] = None,
        next_run: Optional[date] = None,
        template: Optional[RecurringTemplate] = None,
    ) -> RecurringTransaction:
        """Edit the schedule or template; the cursor only moves if `next_run` is given."""
        schedule = await self.get(book_id, recurring_id)
        changes: dict[str, Any] = {}
        if frequency is not None:
            changes["frequency"] = RecurringFrequency(frequency)
        if interval is not None:
            changes["interval"] = interval
        if next_run is not None:
            changes["next_run"] = next_run
        if template is not None:
            accounts = await self._transactions.load_accounts(book_id)
            self._factory.from_template("template", template, accounts)
            changes["template"] = template

        updated = validated(RecurringTransaction, {
            **schedule.model_dump(),
            **changes,
            "updated_at": utc_now(),
        }, "schedule")
        batch = self._store.batch().set(self._path(book_id), recurring_id, to_document(updated))
        await self._commit(batch, "update_recurring", "recurring", recurring_id, book_id)
        return updated

    async def _set_active(self, book_id: str, recurring_id: str, active: bool) -> RecurringTransaction:
        schedule = await self.get(book_id, recurring_id)
        if schedule.active == active:
            return schedule
        batch = self._store.batch().update(self._path(book_id), recurring_id, {
            "active": active,
            "updated_at": utc_now().isoformat(),
        })
        await self._commit(batch, "update_recurring", "recurring", recurring_id, book_id)
        return schedule.model_copy(update={"active": active})

    async def pause(self, book_id: str, recurring_id: str) -> RecurringTransaction:
        return await self._set_active(book_id, recurring_id, False)

    async def resume(self, book_id: str, recurring_id: str) -> RecurringTransaction:
        """Reactivate a schedule; occurrences missed while paused are caught up on the next pass."""
        return await self._set_active(book_id, recurring_id, True)

    async def delete(self, book_id: str, recurring_id: str) -> None:
        """Delete a schedule. Transactions it already materialized are kept."""
        await self.get(book_id, recurring_id)
        batch = self._store.batch().delete(self._path(book_id), recurring_id)
        await self._commit(batch, "delete_recurring", "recurring", recurring_id, book_id)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    @staticmethod
    def occurrence_id(recurring_id: str, occurrence: date) -> str:
        """Deterministic id of the transaction materialized for one occurrence."""
        return f"txn-{recurring_id}-{occurrence:%Y%m%d}"

    def _build_occurrence(
        self,
        schedule: RecurringTransaction,
        occurrence: date,
        accounts: dict[str, Account],
    ) -> SplitTransaction:
        transaction_id = self.occurrence_id(schedule.id, occurrence)
        splits = self._factory.from_template(transaction_id, schedule.template, accounts)
        currency = schedule.template.currency or accounts[splits[0].account_id].currency
        return validated(SplitTransaction, {
            "id": transaction_id,
            "book_id": schedule.book_id,
            "user_id": schedule.user_id,
            "description": schedule.template.description,
            "date": occurrence,
            "currency": currency,
            "notes": schedule.template.notes,
            "splits": splits,
        }, "template")

    async def process_due(
        self,
        book_id: str,
        today: Optional[date] = None,
    ) -> RecurringRunReport:
        """
        Materialize every due occurrence of every active schedule of a book.

        For each schedule the loop runs until `next_run` is after `today`,
        bounded by `max_catch_up_occurrences`. A schedule whose template no
        longer validates is skipped without advancing. A conflicting commit
        means another session got there first and ends that schedule quietly.

        Raises:
            ScheduleConsistencyError: at least one occurrence could not be
                committed; its `report` lists everything this pass did
        """
        today = today or date.today()
        correlation_id = create_correlation_id()
        report = RecurringRunReport(book_id=book_id, today=today)

        docs = await self._store.query(
            self._path(book_id),
            filters=[
                QueryFilter(field="active", value=True),
                QueryFilter(field="next_run", operator="<=", value=today.isoformat()),
            ],
            order_by="next_run",
        )
        if not docs:
            return report

        accounts = await self._transactions.load_accounts(book_id)
        for doc in docs:
            try:
                schedule = RecurringTransaction.model_validate(doc)
            except PydanticValidationError as e:
                self._logger.warning(
                    "recurring_schedule_unreadable",
                    recurring_id=doc.get("id"),
                    error=str(e),
                )
                report.skipped.append(SkippedSchedule(
                    recurring_id=str(doc.get("id")),
                    reason=f"Stored schedule is invalid: {e.errors()[0]['msg']}",
                ))
                continue
            await self._process_schedule(
                schedule,
                today,
                accounts,
                report,
                correlation_id,
            )

        self._logger.info(
            "recurring_processed",
            book_id=book_id,
            materialized=report.materialized_count,
            skipped=len(report.skipped),
            conflicts=len(report.conflicts),
            failed=len(report.failed),
        )
        if report.failed:
            raise ScheduleConsistencyError(
                f"{len(report.failed)} recurring occurrence(s) could not be committed "
                "and need manual reconciliation",
                report=report,
            )
        return report

    async def _process_schedule(
        self,
        schedule: RecurringTransaction,
        today: date,
        accounts: dict[str, Account],
        report: RecurringRunReport,
        correlation_id,
    ) -> None:
        path = self._path(schedule.book_id)
        processed = 0

        while schedule.next_run <= today:
            if processed >= self._settings.max_catch_up_occurrences:
                self._logger.warning(
                    "recurring_catch_up_limit",
                    recurring_id=schedule.id,
                    next_run=schedule.next_run.isoformat(),
                )
                report.skipped.append(SkippedSchedule(
                    recurring_id=schedule.id,
                    reason=(
                        f"Catch-up limit of {self._settings.max_catch_up_occurrences} "
                        f"reached; next run {schedule.next_run.isoformat()}"
                    ),
                ))
                return

            occurrence = schedule.next_run
            try:
                transaction = self._build_occurrence(schedule, occurrence, accounts)
            except ValidationError as e:
                self._logger.warning(
                    "recurring_template_invalid",
                    recurring_id=schedule.id,
                    error=str(e),
                )
                report.skipped.append(SkippedSchedule(recurring_id=schedule.id, reason=str(e)))
                return

            next_run = next_run_after(occurrence, schedule.frequency, schedule.interval)
            batch = self._store.batch()
            self._transactions.stage_create(batch, transaction)
            batch.update(
                path,
                schedule.id,
                {
                    "next_run": next_run.isoformat(),
                    "last_run": occurrence.isoformat(),
                    "updated_at": utc_now().isoformat(),
                },
                expected={"next_run": occurrence.isoformat()},
            )

            try:
                await self._store.commit(batch)
            except (ConflictError, DuplicateError) as e:
                self._logger.info(
                    "recurring_already_processed",
                    recurring_id=schedule.id,
                    occurrence=occurrence.isoformat(),
                    error=str(e),
                )
                report.conflicts.append(schedule.id)
                return
            except StorageError as e:
                self._logger.error(
                    "recurring_commit_failed",
                    recurring_id=schedule.id,
                    occurrence=occurrence.isoformat(),
                    error=str(e),
                )
                await self._audit.log(AuditEventBuilder.schedule_consistency_failed(
                    schedule.book_id,
                    schedule.id,
                    occurrence,
                    str(e),
                    correlation_id,
                ))
                report.failed.append(FailedOccurrence(
                    recurring_id=schedule.id,
                    occurrence=occurrence,
                    error=str(e),
                ))
                return

            report.materialized.append(MaterializedOccurrence(
                recurring_id=schedule.id,
                transaction_id=transaction.id,
                occurrence=occurrence,
            ))
            await self._audit.log(AuditEventBuilder.recurring_materialized(
                schedule.book_id,
                schedule.id,
                transaction.id,
                occurrence,
                next_run,
                correlation_id,
            ))
            schedule = schedule.model_copy(update={"next_run": next_run, "last_run": occurrence})
            processed += 1

    async def list(self, book_id: str, active_only: bool = False) -> list[RecurringTransaction]:
        filters = [QueryFilter(field="active", value=True)] if active_only else []
        docs = await self._store.query(self._path(book_id), filters=filters, order_by="next_run")
        return [RecurringTransaction.model_validate(doc) for doc in docs]
