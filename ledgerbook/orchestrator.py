"""
Ledger Facade

This module ties together all the components around ONE explicitly
constructed document store and exposes the operations the UI layer calls:
1. Books and their starter data
2. Transactions (simple, split, update, delete, account cascade)
3. Recurring schedules and their processing
4. Reports

DESIGN DECISION: There is no process-wide store. Every Ledger owns the
store it was built with, so two ledgers (e.g. in tests) never share state.
Every mutation is audited after its commit.
"""

from datetime import date
from typing import Optional

import structlog

from ledgerbook.audit import AuditLogger
from ledgerbook.config import LedgerSettings, get_settings
from ledgerbook.ledger import (
    BookScope,
    RecurringRunReport,
    RecurringScheduler,
    TransactionStore,
)
from ledgerbook.models.ledger import (
    SimpleTransactionIntent,
    SplitEntry,
    SplitTransaction,
    TransactionDetails,
)
from ledgerbook.queries import LedgerQueries
from ledgerbook.services.storage import (
    DocumentStore,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
)


logger = structlog.get_logger(__name__)


class Ledger:
    """
    The ledger core of one document store.

    Components:
        books: BookScope (books, accounts, categories, activity)
        transactions: TransactionStore
        recurring: RecurringScheduler
        queries: LedgerQueries
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.settings = settings or get_settings().ledger
        self.audit_logger = audit_logger or AuditLogger(store)

        self.books = BookScope(store, self.settings, self.audit_logger)
        self.transactions = TransactionStore(store, self.settings, self.audit_logger)
        self.recurring = RecurringScheduler(
            store,
            self.transactions,
            self.settings,
            self.audit_logger,
        )
        self.queries = LedgerQueries(
            self.books,
            self.transactions,
            self.settings.balance_tolerance,
        )

    # Shortcuts for the calls the UI makes most

    async def create_simple(
        self,
        book_id: str,
        user_id: str,
        intent: SimpleTransactionIntent,
    ) -> str:
        return await self.transactions.create_simple(book_id, user_id, intent)

    async def create_split(
        self,
        book_id: str,
        user_id: str,
        details: TransactionDetails,
        entries: list[SplitEntry],
    ) -> str:
        return await self.transactions.create_split(book_id, user_id, details, entries)

    async def update(
        self,
        book_id: str,
        transaction_id: str,
        intent: TransactionDetails,
        entries: Optional[list[SplitEntry]] = None,
    ) -> SplitTransaction:
        return await self.transactions.update(book_id, transaction_id, intent, entries)

    async def delete(self, book_id: str, transaction_id: str) -> None:
        await self.transactions.delete(book_id, transaction_id)

    async def delete_account(self, book_id: str, account_id: str) -> int:
        return await self.transactions.delete_account(book_id, account_id)

    async def process_recurring(
        self,
        book_id: str,
        today: Optional[date] = None,
    ) -> RecurringRunReport:
        return await self.recurring.process_due(book_id, today)


def create_ledger(backend: Optional[str] = None) -> Ledger:
    """
    Factory function to build a Ledger on the configured storage backend.

    Args:
        backend: "memory" or "google_sheets"; defaults to the
                 STORAGE_BACKEND setting.

    Returns:
        A Ledger whose store, audit logger and services are wired together
    """
    settings = get_settings()
    backend = backend or settings.app.storage_backend

    if backend == "google_sheets":
        store: DocumentStore = GoogleSheetsDocumentStore(GoogleSheetsClient(settings.google_sheets))
    elif backend == "memory":
        store = InMemoryDocumentStore()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    logger.info("ledger_created", backend=backend)
    return Ledger(store, settings.ledger, AuditLogger(store))
