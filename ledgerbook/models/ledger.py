"""
Core Data Models for the ledger

These models define the strict schemas for every record the ledger core
reads or writes. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Serialize to JSON-compatible documents for any storage backend
4. Keep a denormalized snapshot of account path/type on every split

Persisted records (books, accounts, transactions, splits, schedules,
activities) are separate from intents (what a caller asks for). Intents are
deliberately permissive; IntentValidator decides whether they are acceptable.
"""

import datetime as dt
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    model_validator,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Generate a document id such as ``txn-3f2a...``."""
    return f"{prefix}-{uuid4().hex}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """
    The four ledger account types.

    ASSET and EXPENSE follow the debit convention (positive value increases
    the balance); LIABILITY and INCOME follow the credit convention.
    """
    ASSET = "asset"
    LIABILITY = "liability"
    INCOME = "income"
    EXPENSE = "expense"


class TransactionType(str, Enum):
    """Display classification of a transaction. Never used in arithmetic."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class SplitType(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Currency(str, Enum):
    """Supported currencies."""
    INR = "INR"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    AUD = "AUD"
    CAD = "CAD"
    CHF = "CHF"
    CNY = "CNY"


class ActivityType(str, Enum):
    """Kinds of non-transactional account edits."""
    BALANCE_UPDATE = "balance_update"
    CURRENCY_UPDATE = "currency_update"
    DETAILS_UPDATE = "details_update"


MAX_DESCRIPTION_LENGTH = 500
MAX_NOTES_LENGTH = 1000
MAX_NUMBER_LENGTH = 50


# =============================================================================
# BOOKS, ACCOUNTS, CATEGORIES
# =============================================================================

class BookSettings(BaseModel):
    fiscal_year_start: Optional[str] = Field(
        default=None,
        pattern=r"^\d{2}-\d{2}$",
        description="Start of the fiscal year as MM-DD, e.g. 04-01"
    )
    enable_reconciliation: bool = False
    enable_budgets: bool = True


class Book(BaseModel):
    """
    An isolated ledger namespace.

    Every account, transaction, category and schedule belongs to exactly one book.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("book"))
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    default_currency: Currency = Currency.INR
    is_default: bool = False
    settings: BookSettings = Field(default_factory=BookSettings)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Account(BaseModel):
    """
    A named ledger node.

    `balance` is denormalized: it must always equal the balance effect of
    every split referencing this account plus the manual adjustments
    recorded as account activities.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("acc"))
    book_id: str
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    currency: Currency = Currency.INR
    balance: Decimal = Decimal("0")
    color: str = "#64748b"
    icon: str = "wallet"
    path: Optional[str] = Field(
        default=None,
        description="Hierarchical path such as Expenses:Food; defaults to the name"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def display_path(self) -> str:
        return self.path or self.name


class Category(BaseModel):
    """A user-facing income/expense label seeded with every book."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("cat"))
    book_id: str
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    type: Literal["income", "expense"]
    icon: str = "tag"
    color: str = "#64748b"


class AccountActivity(BaseModel):
    """
    Audit record of a direct account edit.

    Manual balance edits bypass the split ledger; the balance change is
    recorded here so reporting and reconciliation can account for it.
    """

    id: str = Field(default_factory=lambda: new_id("act"))
    book_id: str
    account_id: str
    account_name: str
    user_id: Optional[str] = None
    type: ActivityType
    changes: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Changed fields as {field: {'old': ..., 'new': ...}}"
    )
    date: datetime = Field(default_factory=utc_now)

    @property
    def balance_delta(self) -> Decimal:
        """Signed balance change made by this edit (zero if the balance was untouched)."""
        change = self.changes.get("balance")
        if not change:
            return Decimal("0")
        return Decimal(str(change["new"])) - Decimal(str(change["old"]))


# =============================================================================
# TRANSACTIONS AND SPLITS
# =============================================================================

class Split(BaseModel):
    """
    One leg of a transaction.

    `account_path` and `account_type` are snapshots taken when the split was
    built so history does not depend on current account naming.
    """

    id: str
    transaction_id: str
    account_id: str
    account_path: str
    account_type: AccountType
    value: Decimal
    memo: Optional[str] = None


class SplitTransaction(BaseModel):
    """A transaction in canonical double-entry form."""
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Literal["split"] = "split"
    id: str
    book_id: str
    user_id: str
    description: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)
    date: dt.date
    currency: Currency = Currency.INR
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)
    number: Optional[str] = Field(default=None, max_length=MAX_NUMBER_LENGTH)
    splits: list[Split]
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_splits(self) -> 'SplitTransaction':
        """A persisted transaction always has at least two balanced splits."""
        from ledgerbook.accounting.rules import is_balanced

        if len(self.splits) < 2:
            raise ValueError("A transaction needs at least two splits")
        if not is_balanced(self.splits):
            raise ValueError("Transaction splits must sum to zero")
        return self

    @property
    def account_ids(self) -> set[str]:
        return {split.account_id for split in self.splits}


class LegacyTransaction(BaseModel):
    """
    A transaction stored in the older single-entry shape.

    Only read, never written: LedgerEntryFactory.normalize turns it into
    canonical splits before any balance logic sees it.
    """

    kind: Literal["legacy"] = "legacy"
    id: str
    book_id: str
    user_id: str
    description: str = ""
    date: dt.date
    currency: Currency = Currency.INR
    notes: Optional[str] = None
    account_id: str
    to_account_id: Optional[str] = None
    amount: Decimal
    type: TransactionType
    category: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


StoredTransaction = Annotated[
    Union[SplitTransaction, LegacyTransaction],
    Field(discriminator="kind"),
]

_stored_transaction_adapter = TypeAdapter(StoredTransaction)


def parse_transaction_document(
    doc: dict[str, Any],
) -> Union[SplitTransaction, LegacyTransaction]:
    """
    Parse a stored transaction document into its tagged variant.

    Documents written before the `kind` tag existed are tagged by shape.
    """
    if "kind" not in doc:
        doc = {**doc, "kind": "split" if doc.get("splits") else "legacy"}
    return _stored_transaction_adapter.validate_python(doc)


# =============================================================================
# INTENTS - what callers ask the ledger to do
# =============================================================================

class TransactionDetails(BaseModel):
    """Header fields shared by every transaction intent."""
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = ""
    date: dt.date = Field(default_factory=dt.date.today)
    currency: Optional[Currency] = None
    notes: Optional[str] = None
    number: Optional[str] = None


class SimpleTransactionIntent(TransactionDetails):
    """
    Move `amount` from one account to another.

    Covers expenses (asset -> expense), income (income -> asset) and plain
    transfers between asset/liability accounts.
    """

    amount: Decimal
    from_account_id: str = ""
    to_account_id: str = ""


class SplitEntry(BaseModel):
    """One caller-supplied leg of a multi-way split."""

    account_id: str = ""
    amount: Decimal
    type: SplitType
    memo: Optional[str] = None

    @property
    def signed_value(self) -> Decimal:
        magnitude = abs(self.amount)
        return magnitude if self.type == SplitType.DEBIT else -magnitude


# =============================================================================
# RECURRING TRANSACTIONS
# =============================================================================

class TemplateSplit(BaseModel):
    account_id: str
    account_path: str
    account_type: AccountType
    value: Decimal
    memo: Optional[str] = None


class RecurringTemplate(BaseModel):
    """The transaction a schedule materializes on every occurrence."""
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    splits: list[TemplateSplit] = Field(..., min_length=2)
    notes: Optional[str] = Field(default="Recurring Transaction", max_length=MAX_NOTES_LENGTH)
    currency: Optional[Currency] = None


class RecurringTransaction(BaseModel):
    """
    A template plus a schedule.

    `next_run` is always the date of the next unmaterialized occurrence and
    only moves forward.
    """

    id: str = Field(default_factory=lambda: new_id("rec"))
    book_id: str
    user_id: str
    frequency: RecurringFrequency
    interval: int = Field(default=1, ge=1, le=366)
    start_date: date
    next_run: date
    last_run: Optional[date] = None
    active: bool = True
    template: RecurringTemplate
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_dates(self) -> 'RecurringTransaction':
        if self.next_run < self.start_date:
            raise ValueError("Next run cannot be before the start date")
        if self.last_run and self.last_run >= self.next_run:
            raise ValueError("Last run must be before the next run")
        return self


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'unbalanced')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage intent validation.

    Stage 1: Schema validation (required fields, amounts, shape)
    Stage 2: Semantic validation (accounts exist, debits equal credits)
    """

    validated_at: datetime = Field(default_factory=utc_now)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    # Warnings don't block but should be shown
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]
