"""
Ledger services package.

Book scoping, atomic transaction persistence and recurring schedules,
all operating on an injected document store.
"""

from ledgerbook.ledger.base import BOOK_COLLECTIONS, collection_path
from ledgerbook.ledger.books import BookScope, SeedReport
from ledgerbook.ledger.recurring import (
    RecurringRunReport,
    RecurringScheduler,
    next_run_after,
)
from ledgerbook.ledger.transactions import TransactionStore

__all__ = [
    "BOOK_COLLECTIONS",
    "BookScope",
    "RecurringRunReport",
    "RecurringScheduler",
    "SeedReport",
    "TransactionStore",
    "collection_path",
    "next_run_after",
]
