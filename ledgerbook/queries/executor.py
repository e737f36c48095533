"""
Reporting Queries

DESIGN DECISION: Reports are DETERMINISTIC reads over stored data.
Every figure goes through the same `balance_effect` sign rule that
maintains the stored balances, so a report can never disagree with the
balances it sits next to.

Nothing here writes. `reconcile` is the balance invariant as a query:
stored balance == replay of every split + manual adjustments.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field

from ledgerbook.accounting.currency import RateTable, convert_currency
from ledgerbook.accounting.projector import BalanceProjector
from ledgerbook.accounting.rules import BALANCE_TOLERANCE, balance_effect
from ledgerbook.ledger.books import BookScope
from ledgerbook.ledger.transactions import TransactionStore
from ledgerbook.models.ledger import Account, AccountType, Currency


# =============================================================================
# RESULT MODELS
# =============================================================================

class ReportLineItem(BaseModel):
    account_id: Optional[str] = None
    account_path: str
    amount: Decimal


class IncomeStatement(BaseModel):
    """Revenue and expenses of a period, by account path."""

    book_id: str
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    revenue: list[ReportLineItem] = Field(default_factory=list)
    expenses: list[ReportLineItem] = Field(default_factory=list)
    manual_adjustments: list[ReportLineItem] = Field(
        default_factory=list,
        description="Income/expense balance edits made outside of transactions"
    )
    total_revenue: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    @property
    def net_income_percentage(self) -> Decimal:
        if self.total_revenue <= 0:
            return Decimal("0")
        return self.net_income / self.total_revenue * 100


class AccountSummaryLine(BaseModel):
    account_id: str
    name: str
    path: str
    type: AccountType
    balance: Decimal
    currency: Currency
    transaction_count: int = 0
    last_activity: Optional[date] = None


class AccountSummary(BaseModel):
    """Every account of a book grouped by account type."""

    book_id: str
    groups: dict[AccountType, list[AccountSummaryLine]] = Field(default_factory=dict)
    totals: dict[AccountType, Decimal] = Field(default_factory=dict)

    @property
    def net_worth(self) -> Decimal:
        return (
            self.totals.get(AccountType.ASSET, Decimal("0"))
            - self.totals.get(AccountType.LIABILITY, Decimal("0"))
        )


class NetWorth(BaseModel):
    book_id: str
    base_currency: Currency
    total_assets: Decimal
    total_liabilities: Decimal

    @property
    def net_worth(self) -> Decimal:
        return self.total_assets - self.total_liabilities


class BalanceDiscrepancy(BaseModel):
    """An account whose stored balance disagrees with its ledger history."""

    account_id: str
    account_name: str
    stored_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance


def _in_range(day: date, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from and day < date_from:
        return False
    if date_to and day > date_to:
        return False
    return True


# =============================================================================
# QUERIES
# =============================================================================

class LedgerQueries:
    """
    Read-only aggregation over one book.

    GUARANTEES:
    - Only returns real data from storage
    - Uses the same sign convention as the stored balances
    """

    def __init__(
        self,
        books: BookScope,
        transactions: TransactionStore,
        tolerance: Decimal = BALANCE_TOLERANCE,
    ):
        self._books = books
        self._transactions = transactions
        self._projector = BalanceProjector()
        self._tolerance = tolerance

    async def account_summary(self, book_id: str) -> AccountSummary:
        """Balances, transaction counts and last activity per account, grouped by type."""
        accounts = await self._books.list_accounts(book_id)
        transactions = await self._transactions.list(book_id)

        counts: dict[str, int] = defaultdict(int)
        last_seen: dict[str, date] = {}
        for transaction in transactions:
            for account_id in transaction.account_ids:
                counts[account_id] += 1
                if account_id not in last_seen or transaction.date > last_seen[account_id]:
                    last_seen[account_id] = transaction.date

        summary = AccountSummary(book_id=book_id)
        for account in accounts:
            summary.groups.setdefault(account.type, []).append(AccountSummaryLine(
                account_id=account.id,
                name=account.name,
                path=account.display_path,
                type=account.type,
                balance=account.balance,
                currency=account.currency,
                transaction_count=counts.get(account.id, 0),
                last_activity=last_seen.get(account.id),
            ))
            summary.totals[account.type] = (
                summary.totals.get(account.type, Decimal("0")) + account.balance
            )
        return summary

    async def income_statement(
        self,
        book_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> IncomeStatement:
        """
        Revenue and expenses of a period.

        Amounts are balance effects on income and expense accounts, so a
        refund booked against an expense account reduces that expense.
        Balance edits on income/expense accounts made outside of
        transactions are listed and counted as manual adjustments.
        """
        transactions = await self._transactions.list(book_id, date_from=date_from, date_to=date_to)

        totals: dict[tuple[str, str, AccountType], Decimal] = defaultdict(lambda: Decimal("0"))
        for transaction in transactions:
            for split in transaction.splits:
                if split.account_type not in (AccountType.INCOME, AccountType.EXPENSE):
                    continue
                key = (split.account_id, split.account_path, split.account_type)
                totals[key] += balance_effect(split.account_type, split.value)

        statement = IncomeStatement(book_id=book_id, date_from=date_from, date_to=date_to)
        for (account_id, path, account_type), amount in totals.items():
            item = ReportLineItem(account_id=account_id, account_path=path, amount=amount)
            if account_type == AccountType.INCOME:
                statement.revenue.append(item)
            else:
                statement.expenses.append(item)

        accounts = {account.id: account for account in await self._books.list_accounts(book_id)}
        for activity in await self._books.list_activities(book_id):
            account = accounts.get(activity.account_id)
            delta = activity.balance_delta
            if account is None or delta == 0:
                continue
            if account.type not in (AccountType.INCOME, AccountType.EXPENSE):
                continue
            if not _in_range(activity.date.date(), date_from, date_to):
                continue
            item = ReportLineItem(
                account_id=account.id,
                account_path=account.display_path,
                amount=delta,
            )
            statement.manual_adjustments.append(item)
            if account.type == AccountType.INCOME:
                statement.revenue.append(item)
            else:
                statement.expenses.append(item)

        statement.revenue.sort(key=lambda item: item.amount, reverse=True)
        statement.expenses.sort(key=lambda item: item.amount, reverse=True)
        statement.total_revenue = sum((item.amount for item in statement.revenue), Decimal("0"))
        statement.total_expenses = sum((item.amount for item in statement.expenses), Decimal("0"))
        return statement

    async def net_worth(
        self,
        book_id: str,
        base_currency: Optional[Union[Currency, str]] = None,
        rates: Optional[RateTable] = None,
    ) -> NetWorth:
        """Assets minus liabilities, every balance converted into `base_currency`."""
        book = await self._books.get_book(book_id)
        base = Currency(base_currency or book.default_currency)
        accounts = await self._books.list_accounts(book_id)

        def total(account_type: AccountType) -> Decimal:
            return sum(
                (
                    convert_currency(account.balance, account.currency, base, rates)
                    for account in accounts
                    if account.type == account_type
                ),
                Decimal("0"),
            )

        return NetWorth(
            book_id=book_id,
            base_currency=base,
            total_assets=total(AccountType.ASSET),
            total_liabilities=total(AccountType.LIABILITY),
        )

    async def reconcile(self, book_id: str) -> list[BalanceDiscrepancy]:
        """
        Compare every stored balance with a replay of the ledger.

        Returns:
            One entry per account whose stored balance is off by the
            balance tolerance or more; empty when the book is consistent
        """
        accounts: list[Account] = await self._books.list_accounts(book_id)
        transactions = await self._transactions.list(book_id)
        activities = await self._books.list_activities(book_id)
        expected = self._projector.replay(transactions, activities)

        discrepancies = []
        for account in accounts:
            expected_balance = expected.get(account.id, Decimal("0"))
            if abs(account.balance - expected_balance) >= self._tolerance:
                discrepancies.append(BalanceDiscrepancy(
                    account_id=account.id,
                    account_name=account.name,
                    stored_balance=account.balance,
                    expected_balance=expected_balance,
                ))
        return discrepancies
