"""
Shared fixtures.

Every test gets its own in-memory store and its own Ledger built on it,
so no state leaks between tests. No real API calls are made anywhere.
"""

from decimal import Decimal
from typing import Callable, Optional

import pytest

from ledgerbook.config import LedgerSettings
from ledgerbook.models.ledger import AccountType
from ledgerbook.orchestrator import Ledger
from ledgerbook.services.storage import InMemoryDocumentStore, StorageError, WriteBatch


USER_ID = "user-1"


class FailingStore(InMemoryDocumentStore):
    """
    In-memory store whose commits can be made to fail.

    `fail_when` decides per batch; by default every commit fails once
    `failing` is switched on.
    """

    def __init__(self, fail_when: Optional[Callable[[WriteBatch], bool]] = None):
        super().__init__()
        self.failing = False
        self.fail_when = fail_when or (lambda batch: True)

    async def commit(self, batch: WriteBatch) -> None:
        if self.failing and self.fail_when(batch):
            raise StorageError("backend unavailable")
        await super().commit(batch)


def ledger_state(store: InMemoryDocumentStore) -> dict:
    """Every collection except the audit trail."""
    return {
        collection: documents
        for collection, documents in store.dump().items()
        if collection != "audit_log"
    }


@pytest.fixture
def settings():
    return LedgerSettings(seed_default_data=False)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def ledger(store, settings):
    return Ledger(store, settings)


@pytest.fixture
async def book(ledger):
    return await ledger.books.create_book(USER_ID, "Personal", default_currency="INR")


@pytest.fixture
async def accounts(ledger, book):
    """Cash (500), Food, Salary and Credit Card accounts in the book."""
    cash = await ledger.books.create_account(
        book.id, USER_ID, "Cash", AccountType.ASSET, balance=Decimal("500")
    )
    food = await ledger.books.create_account(
        book.id, USER_ID, "Food", AccountType.EXPENSE, path="Expenses:Food"
    )
    salary = await ledger.books.create_account(
        book.id, USER_ID, "Salary", AccountType.INCOME
    )
    card = await ledger.books.create_account(
        book.id, USER_ID, "Credit Card", AccountType.LIABILITY
    )
    return {"cash": cash, "food": food, "salary": salary, "card": card}


async def balance_of(ledger: Ledger, book_id: str, account_id: str) -> Decimal:
    account = await ledger.books.get_account(book_id, account_id)
    return account.balance
