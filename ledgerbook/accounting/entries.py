"""
Ledger entry construction.

Turns high-level intents into split sets:
- simple two-account movements (expense, income, transfer)
- caller-supplied multi-way splits
- legacy single-entry records
- recurring templates

The factory only guarantees that the split values are additive inverses
of each other; what a value means for an account's balance is decided
later by the sign convention in `rules`.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional, Union

from ledgerbook.accounting.rules import (
    BALANCE_TOLERANCE,
    debit_credit_totals,
    is_balanced,
)
from ledgerbook.errors import ValidationError
from ledgerbook.models.ledger import (
    Account,
    AccountType,
    Currency,
    LegacyTransaction,
    RecurringTemplate,
    Split,
    SplitEntry,
    SplitTransaction,
    TransactionDetails,
    TransactionType,
    ValidationIssue,
    utc_now,
)


def _reject(field: str, issue_type: str, message: str) -> ValidationError:
    issue = ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
    )
    return ValidationError(message, issues=[issue])


class LedgerEntryFactory:
    """Builds valid split sets for the canonical transaction shapes."""

    def __init__(self, tolerance: Decimal = BALANCE_TOLERANCE):
        self._tolerance = tolerance

    @staticmethod
    def split_id(transaction_id: str, index: int) -> str:
        return f"{transaction_id}-split-{index}"

    # -------------------------------------------------------------------------
    # Simple movements
    # -------------------------------------------------------------------------

    def simple_transfer(
        self,
        transaction_id: str,
        source: Account,
        destination: Account,
        amount: Decimal,
    ) -> list[Split]:
        """
        Two splits: the source gets -amount, the destination +amount.

        Example: pay 100 cash for food
        Cash (asset)   -> -100
        Food (expense) -> +100
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise _reject("amount", "invalid_value", "Amount must be greater than zero")
        if source.id == destination.id:
            raise _reject(
                "to_account_id",
                "invalid_value",
                "Source and destination accounts must be different",
            )

        return [
            Split(
                id=self.split_id(transaction_id, 1),
                transaction_id=transaction_id,
                account_id=source.id,
                account_path=source.display_path,
                account_type=source.type,
                value=-amount,
            ),
            Split(
                id=self.split_id(transaction_id, 2),
                transaction_id=transaction_id,
                account_id=destination.id,
                account_path=destination.display_path,
                account_type=destination.type,
                value=amount,
            ),
        ]

    def income(
        self,
        transaction_id: str,
        deposit_account: Account,
        income_account: Account,
        amount: Decimal,
    ) -> list[Split]:
        """Receive money: the income account is the source, the deposit account the destination."""
        return self.simple_transfer(transaction_id, income_account, deposit_account, amount)

    def expense(
        self,
        transaction_id: str,
        payment_account: Account,
        expense_account: Account,
        amount: Decimal,
    ) -> list[Split]:
        """Pay for something: money leaves the payment account into the expense account."""
        return self.simple_transfer(transaction_id, payment_account, expense_account, amount)

    # -------------------------------------------------------------------------
    # Multi-way splits
    # -------------------------------------------------------------------------

    def multi_split(
        self,
        transaction_id: str,
        entries: list[SplitEntry],
        accounts: Mapping[str, Account],
    ) -> list[Split]:
        """
        Convert caller entries into signed splits (debit -> +amount, credit -> -amount).

        Raises:
            ValidationError: fewer than two entries, unknown account,
                non-positive amount, or debits != credits beyond tolerance
        """
        if len(entries) < 2:
            raise _reject(
                "entries",
                "too_few_splits",
                "A split transaction needs at least two entries",
            )

        splits = []
        for index, entry in enumerate(entries, start=1):
            account = accounts.get(entry.account_id)
            if account is None:
                raise _reject(
                    "entries",
                    "unknown_account",
                    f"Account not found: {entry.account_id}",
                )
            if entry.amount <= 0:
                raise _reject(
                    "entries",
                    "invalid_value",
                    f"Split amount for {account.name} must be greater than zero",
                )
            splits.append(Split(
                id=self.split_id(transaction_id, index),
                transaction_id=transaction_id,
                account_id=account.id,
                account_path=account.display_path,
                account_type=account.type,
                value=entry.signed_value,
                memo=entry.memo,
            ))

        self.ensure_balanced(splits)
        return splits

    def ensure_balanced(self, splits: list) -> None:
        if not is_balanced(splits, self._tolerance):
            debits, credits = debit_credit_totals(splits)
            raise _reject(
                "entries",
                "unbalanced",
                f"Debits ({debits:.2f}) must equal credits ({credits:.2f})",
            )

    # -------------------------------------------------------------------------
    # Display classification
    # -------------------------------------------------------------------------

    @staticmethod
    def infer_type(
        splits: Iterable[Split],
        viewed_account_id: Optional[str] = None,
    ) -> TransactionType:
        """
        Classify a transaction for display.

        income if an income account participates, expense if an expense
        account does, transfer otherwise. With a viewed account, only the
        other legs are considered.
        """
        splits = list(splits)
        if viewed_account_id is not None:
            if not any(split.account_id == viewed_account_id for split in splits):
                return TransactionType.TRANSFER
            splits = [split for split in splits if split.account_id != viewed_account_id]

        types = {split.account_type for split in splits}
        if AccountType.INCOME in types:
            return TransactionType.INCOME
        if AccountType.EXPENSE in types:
            return TransactionType.EXPENSE
        return TransactionType.TRANSFER

    # -------------------------------------------------------------------------
    # Normalization
    # -------------------------------------------------------------------------

    def build_transaction(
        self,
        transaction_id: str,
        book_id: str,
        user_id: str,
        details: TransactionDetails,
        splits: list[Split],
        currency: Union[Currency, str],
    ) -> SplitTransaction:
        return SplitTransaction(
            id=transaction_id,
            book_id=book_id,
            user_id=user_id,
            description=details.description,
            date=details.date,
            currency=details.currency or currency,
            notes=details.notes,
            number=details.number,
            splits=splits,
        )

    def from_legacy(
        self,
        legacy: LegacyTransaction,
        accounts: Mapping[str, Account],
    ) -> SplitTransaction:
        """Synthesize the splits of a simple transfer from legacy flat fields."""
        primary = accounts.get(legacy.account_id)
        if primary is None:
            raise _reject(
                "account_id",
                "unknown_account",
                f"Account not found: {legacy.account_id}",
            )

        if legacy.type == TransactionType.TRANSFER:
            destination = accounts.get(legacy.to_account_id or "")
            if destination is None:
                raise _reject(
                    "to_account_id",
                    "missing",
                    f"Legacy transfer {legacy.id} has no destination account",
                )
            source = primary
        elif legacy.type == TransactionType.INCOME:
            source = self._legacy_counter_account(legacy, accounts, AccountType.INCOME)
            destination = primary
        else:
            source = primary
            destination = self._legacy_counter_account(legacy, accounts, AccountType.EXPENSE)

        splits = self.simple_transfer(legacy.id, source, destination, abs(legacy.amount))
        return SplitTransaction(
            id=legacy.id,
            book_id=legacy.book_id,
            user_id=legacy.user_id,
            description=legacy.description,
            date=legacy.date,
            currency=legacy.currency,
            notes=legacy.notes,
            splits=splits,
            created_at=legacy.created_at,
            updated_at=legacy.updated_at,
        )

    @staticmethod
    def _legacy_counter_account(
        legacy: LegacyTransaction,
        accounts: Mapping[str, Account],
        wanted: AccountType,
    ) -> Account:
        if legacy.to_account_id and legacy.to_account_id in accounts:
            return accounts[legacy.to_account_id]

        if legacy.category:
            name = legacy.category.casefold()
            for account in accounts.values():
                if account.type == wanted and account.name.casefold() == name:
                    return account

        raise _reject(
            "category",
            "unknown_account",
            f"No {wanted.value} account found for legacy transaction {legacy.id}",
        )

    def normalize(
        self,
        stored: Union[SplitTransaction, LegacyTransaction],
        accounts: Mapping[str, Account],
    ) -> SplitTransaction:
        """Return the canonical split form of any stored transaction."""
        if isinstance(stored, SplitTransaction):
            return stored
        return self.from_legacy(stored, accounts)

    # -------------------------------------------------------------------------
    # Recurring templates
    # -------------------------------------------------------------------------

    def from_template(
        self,
        transaction_id: str,
        template: RecurringTemplate,
        accounts: Mapping[str, Account],
    ) -> list[Split]:
        """
        Re-id template splits for a new occurrence.

        Account path/type snapshots are refreshed from the live accounts.
        """
        splits = []
        for index, leg in enumerate(template.splits, start=1):
            account = accounts.get(leg.account_id)
            if account is None:
                raise _reject(
                    "template",
                    "unknown_account",
                    f"Account not found: {leg.account_id}",
                )
            splits.append(Split(
                id=self.split_id(transaction_id, index),
                transaction_id=transaction_id,
                account_id=account.id,
                account_path=account.display_path,
                account_type=account.type,
                value=leg.value,
                memo=leg.memo,
            ))

        if len(splits) < 2:
            raise _reject("template", "too_few_splits", "A template needs at least two splits")
        self.ensure_balanced(splits)
        return splits

    @staticmethod
    def restamp(transaction: SplitTransaction, **changes) -> SplitTransaction:
        """Copy a transaction with changed header fields and a fresh updated_at."""
        return transaction.model_copy(update={**changes, "updated_at": utc_now()})
