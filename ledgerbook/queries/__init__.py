"""Reporting queries package."""

from ledgerbook.queries.executor import (
    AccountSummary,
    AccountSummaryLine,
    BalanceDiscrepancy,
    IncomeStatement,
    LedgerQueries,
    NetWorth,
    ReportLineItem,
)

__all__ = [
    "AccountSummary",
    "AccountSummaryLine",
    "BalanceDiscrepancy",
    "IncomeStatement",
    "LedgerQueries",
    "NetWorth",
    "ReportLineItem",
]
