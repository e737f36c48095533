"""
Tests for the double-entry sign convention and balance checks.
"""

from decimal import Decimal

import pytest

from ledgerbook.accounting.rules import (
    balance_effect,
    debit_credit_totals,
    display_amount,
    is_balanced,
    other_account_path,
    splits_total,
)
from ledgerbook.models.ledger import AccountType, Split


def make_split(account_id: str, account_type: AccountType, value: str, path: str = None) -> Split:
    return Split(
        id=f"s-{account_id}",
        transaction_id="txn-1",
        account_id=account_id,
        account_path=path or account_id.title(),
        account_type=account_type,
        value=Decimal(value),
    )


class TestBalanceEffect:
    """Tests for the one place the sign convention lives."""

    @pytest.mark.parametrize("account_type", [AccountType.ASSET, AccountType.EXPENSE])
    def test_debit_convention_moves_with_value(self, account_type):
        assert balance_effect(account_type, Decimal("100")) == Decimal("100")
        assert balance_effect(account_type, Decimal("-40")) == Decimal("-40")

    @pytest.mark.parametrize("account_type", [AccountType.LIABILITY, AccountType.INCOME])
    def test_credit_convention_moves_against_value(self, account_type):
        assert balance_effect(account_type, Decimal("100")) == Decimal("-100")
        assert balance_effect(account_type, Decimal("-40")) == Decimal("40")

    def test_accepts_plain_strings(self):
        """Stored documents carry decimals as strings."""
        assert balance_effect("income", "-250.50") == Decimal("250.50")


class TestBalanceChecks:
    """Tests for the zero-sum check and its tolerance."""

    def test_balanced_splits(self):
        splits = [
            make_split("cash", AccountType.ASSET, "-120"),
            make_split("food", AccountType.EXPENSE, "120"),
        ]
        assert splits_total(splits) == Decimal("0")
        assert is_balanced(splits)

    def test_rounding_residue_within_tolerance(self):
        splits = [
            make_split("cash", AccountType.ASSET, "-33.333"),
            make_split("food", AccountType.EXPENSE, "33.338"),
        ]
        assert is_balanced(splits)

    def test_one_cent_off_is_unbalanced(self):
        splits = [
            make_split("cash", AccountType.ASSET, "-100.00"),
            make_split("food", AccountType.EXPENSE, "100.01"),
        ]
        assert not is_balanced(splits)

    def test_custom_tolerance(self):
        splits = [
            make_split("cash", AccountType.ASSET, "-100"),
            make_split("food", AccountType.EXPENSE, "100.5"),
        ]
        assert is_balanced(splits, tolerance=Decimal("1"))

    def test_debit_credit_totals(self):
        splits = [
            make_split("cash", AccountType.ASSET, "-100"),
            make_split("food", AccountType.EXPENSE, "60"),
            make_split("fun", AccountType.EXPENSE, "30"),
        ]
        assert debit_credit_totals(splits) == (Decimal("90"), Decimal("100"))


class TestDisplayHelpers:
    """Tests for the per-account view of a transaction."""

    def test_display_amount_follows_the_account_balance(self):
        splits = [
            make_split("salary", AccountType.INCOME, "-1000"),
            make_split("bank", AccountType.ASSET, "1000"),
        ]
        assert display_amount(splits, "bank") == Decimal("1000")
        assert display_amount(splits, "salary") == Decimal("1000")
        assert display_amount(splits, "other") == Decimal("0")

    def test_other_account_path(self):
        splits = [
            make_split("cash", AccountType.ASSET, "-100"),
            make_split("food", AccountType.EXPENSE, "100", path="Expenses:Food"),
        ]
        assert other_account_path(splits, "cash") == "Expenses:Food"

    def test_other_account_path_multiple(self):
        splits = [
            make_split("cash", AccountType.ASSET, "-100"),
            make_split("food", AccountType.EXPENSE, "60"),
            make_split("fun", AccountType.EXPENSE, "40"),
        ]
        assert other_account_path(splits, "cash") == "Multiple Accounts"
        assert other_account_path([], "cash") == "Unknown"
