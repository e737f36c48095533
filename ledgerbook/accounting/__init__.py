"""
Accounting package.

Pure double-entry logic with no I/O: the sign convention, split
construction and balance projection.
"""

from ledgerbook.accounting.entries import LedgerEntryFactory
from ledgerbook.accounting.projector import BalanceProjector, apply_deltas
from ledgerbook.accounting.rules import (
    BALANCE_TOLERANCE,
    balance_effect,
    debit_credit_totals,
    display_amount,
    is_balanced,
    other_account_path,
    splits_total,
)

__all__ = [
    "BALANCE_TOLERANCE",
    "BalanceProjector",
    "LedgerEntryFactory",
    "apply_deltas",
    "balance_effect",
    "debit_credit_totals",
    "display_amount",
    "is_balanced",
    "other_account_path",
    "splits_total",
]
