"""
Double-entry accounting rules.

Account Type | Debit (+) | Credit (-)
-------------|-----------|------------
Asset        | Increase  | Decrease
Liability    | Decrease  | Increase
Income       | Decrease  | Increase
Expense      | Increase  | Decrease

A positive split value is a debit, a negative one a credit, and the splits
of a transaction always sum to zero. `balance_effect` is the only place the
sign convention lives; projection, reporting, display and reconciliation
all go through it.
"""

from decimal import Decimal
from typing import Iterable, Optional, Protocol, Union

from ledgerbook.models.ledger import AccountType


BALANCE_TOLERANCE = Decimal("0.01")

DEBIT_CONVENTION_TYPES = frozenset({AccountType.ASSET, AccountType.EXPENSE})
CREDIT_CONVENTION_TYPES = frozenset({AccountType.LIABILITY, AccountType.INCOME})


class SplitLike(Protocol):
    account_id: str
    account_type: AccountType
    value: Decimal


def _to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def balance_effect(
    account_type: Union[AccountType, str],
    value: Union[Decimal, int, float, str],
) -> Decimal:
    """
    Amount to add to an account's balance for a split of `value`.

    Asset and expense accounts move with the value; liability and income
    accounts move against it.
    """
    value = _to_decimal(value)
    if AccountType(account_type) in DEBIT_CONVENTION_TYPES:
        return value
    return -value


def splits_total(splits: Iterable[SplitLike]) -> Decimal:
    return sum((_to_decimal(split.value) for split in splits), Decimal("0"))


def is_balanced(
    splits: Iterable[SplitLike],
    tolerance: Optional[Decimal] = None,
) -> bool:
    """True iff the split values sum to zero within `tolerance` (0.01 by default)."""
    tolerance = BALANCE_TOLERANCE if tolerance is None else tolerance
    return abs(splits_total(splits)) < tolerance


def debit_credit_totals(splits: Iterable[SplitLike]) -> tuple[Decimal, Decimal]:
    """Return (total debits, total credits), both as positive amounts."""
    debits = Decimal("0")
    credits = Decimal("0")
    for split in splits:
        value = _to_decimal(split.value)
        if value >= 0:
            debits += value
        else:
            credits -= value
    return debits, credits


def display_amount(splits: Iterable[SplitLike], account_id: str) -> Decimal:
    """
    Signed amount a transaction shows from one account's point of view.

    Positive means the account's balance went up, negative that it went down.
    """
    return sum(
        (
            balance_effect(split.account_type, split.value)
            for split in splits
            if split.account_id == account_id
        ),
        Decimal("0"),
    )


def other_account_path(splits: Iterable, account_id: str) -> str:
    """Path of the counter account, e.g. for "Paid to: Food:Restaurant"."""
    others = [split for split in splits if split.account_id != account_id]

    if not others:
        return "Unknown"
    if len(others) == 1:
        return others[0].account_path

    return "Multiple Accounts"
