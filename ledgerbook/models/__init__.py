"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
Every document written to storage is dumped from one of these schemas.
"""

from ledgerbook.models.ledger import (
    Account,
    AccountActivity,
    AccountType,
    ActivityType,
    Book,
    BookSettings,
    Category,
    Currency,
    LegacyTransaction,
    RecurringFrequency,
    RecurringTemplate,
    RecurringTransaction,
    SimpleTransactionIntent,
    Split,
    SplitEntry,
    SplitTransaction,
    SplitType,
    TemplateSplit,
    TransactionDetails,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    parse_transaction_document,
)
from ledgerbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountActivity",
    "AccountType",
    "ActivityType",
    "Book",
    "BookSettings",
    "Category",
    "Currency",
    "LegacyTransaction",
    "RecurringFrequency",
    "RecurringTemplate",
    "RecurringTransaction",
    "SimpleTransactionIntent",
    "Split",
    "SplitEntry",
    "SplitTransaction",
    "SplitType",
    "TemplateSplit",
    "TransactionDetails",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    "parse_transaction_document",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
