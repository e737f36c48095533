"""
Two-Stage Intent Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Header field lengths (description, notes, number)
- Positive amounts
- Distinct source/destination accounts
- At least two split entries
- This catches malformed intents from the UI

STAGE 2 - SEMANTIC VALIDATION:
- Referenced accounts exist in the book
- Debits equal credits within tolerance
- Currency mismatch between participating accounts
- This catches intents that are well-formed but cannot be booked

Stage 2 only runs when stage 1 passed.

IMPORTANT: Validation NEVER silently fixes issues, and runs before any
write is attempted, so a rejected intent leaves no trace.
"""

from decimal import Decimal
from typing import Mapping, Optional

from ledgerbook.accounting.rules import (
    BALANCE_TOLERANCE,
    debit_credit_totals,
    is_balanced,
)
from ledgerbook.errors import ValidationError
from ledgerbook.models.ledger import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_NUMBER_LENGTH,
    Account,
    SimpleTransactionIntent,
    SplitEntry,
    TransactionDetails,
    ValidationIssue,
    ValidationResult,
)


def _has_errors(issues: list[ValidationIssue]) -> bool:
    return any(issue.severity == "error" for issue in issues)


class IntentValidator:
    """
    Validates transaction intents through a two-stage pipeline.

    Stage 1: Schema validation (shape of the intent only)
    Stage 2: Semantic validation (needs the book's accounts)
    """

    def __init__(self, tolerance: Optional[Decimal] = None):
        self._tolerance = BALANCE_TOLERANCE if tolerance is None else tolerance

    # -------------------------------------------------------------------------
    # Header fields
    # -------------------------------------------------------------------------

    def _validate_details_schema(self, details: TransactionDetails) -> list[ValidationIssue]:
        issues = []

        limits = (
            ("description", details.description, MAX_DESCRIPTION_LENGTH),
            ("notes", details.notes, MAX_NOTES_LENGTH),
            ("number", details.number, MAX_NUMBER_LENGTH),
        )
        for field, value, limit in limits:
            if value and len(value) > limit:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="too_long",
                    message=f"{field.capitalize()} must be at most {limit} characters",
                    severity="error",
                    suggested_fix=f"Shorten the {field} by {len(value) - limit} characters",
                ))

        return issues

    def validate_details(self, details: TransactionDetails) -> ValidationResult:
        """Validate header fields only (used for header-only edits)."""
        return self._result(self._validate_details_schema(details), lambda: [])

    # -------------------------------------------------------------------------
    # Simple two-account intents
    # -------------------------------------------------------------------------

    def _validate_simple_schema(
        self,
        intent: SimpleTransactionIntent,
    ) -> list[ValidationIssue]:
        issues = []

        if intent.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter a positive amount",
            ))

        if not intent.from_account_id:
            issues.append(ValidationIssue(
                field="from_account_id",
                issue_type="missing",
                message="Source account is required",
                severity="error",
            ))

        if not intent.to_account_id:
            issues.append(ValidationIssue(
                field="to_account_id",
                issue_type="missing",
                message="Destination account is required",
                severity="error",
            ))

        if (
            intent.from_account_id
            and intent.from_account_id == intent.to_account_id
        ):
            issues.append(ValidationIssue(
                field="to_account_id",
                issue_type="invalid_value",
                message="Source and destination accounts must be different",
                severity="error",
                suggested_fix="Pick two different accounts",
            ))

        return issues

    def _validate_simple_semantic(
        self,
        intent: SimpleTransactionIntent,
        accounts: Mapping[str, Account],
    ) -> list[ValidationIssue]:
        issues = []

        for field in ("from_account_id", "to_account_id"):
            account_id = getattr(intent, field)
            if account_id not in accounts:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="unknown_account",
                    message=f"Account not found: {account_id}",
                    severity="error",
                    suggested_fix="The account may have been deleted; pick another one",
                ))

        if not _has_errors(issues):
            issues.extend(self._currency_warnings(
                [accounts[intent.from_account_id], accounts[intent.to_account_id]],
                intent,
            ))

        return issues

    def validate_simple(
        self,
        intent: SimpleTransactionIntent,
        accounts: Mapping[str, Account],
    ) -> ValidationResult:
        """
        Run full two-stage validation of a simple two-account intent.

        Args:
            intent: The intent to validate
            accounts: The book's accounts by id

        Returns:
            ValidationResult with all issues found
        """
        issues = self._validate_details_schema(intent) + self._validate_simple_schema(intent)
        return self._result(issues, lambda: self._validate_simple_semantic(intent, accounts))

    # -------------------------------------------------------------------------
    # Multi-way split intents
    # -------------------------------------------------------------------------

    def _validate_split_schema(self, entries: list[SplitEntry]) -> list[ValidationIssue]:
        issues = []

        if len(entries) < 2:
            issues.append(ValidationIssue(
                field="entries",
                issue_type="too_few_splits",
                message="A split transaction needs at least two entries",
                severity="error",
                suggested_fix="Add another account to the split",
            ))

        for index, entry in enumerate(entries, start=1):
            if not entry.account_id:
                issues.append(ValidationIssue(
                    field=f"entries[{index}].account_id",
                    issue_type="missing",
                    message=f"Entry {index} has no account",
                    severity="error",
                ))
            if entry.amount <= 0:
                issues.append(ValidationIssue(
                    field=f"entries[{index}].amount",
                    issue_type="invalid_value",
                    message=f"Entry {index} amount must be greater than zero",
                    severity="error",
                ))

        return issues

    def _validate_split_semantic(
        self,
        details: TransactionDetails,
        entries: list[SplitEntry],
        accounts: Mapping[str, Account],
    ) -> list[ValidationIssue]:
        issues = []

        for index, entry in enumerate(entries, start=1):
            if entry.account_id not in accounts:
                issues.append(ValidationIssue(
                    field=f"entries[{index}].account_id",
                    issue_type="unknown_account",
                    message=f"Account not found: {entry.account_id}",
                    severity="error",
                ))

        signed = [_SignedEntry(entry.signed_value) for entry in entries]
        if not is_balanced(signed, self._tolerance):
            debits, credits = debit_credit_totals(signed)
            issues.append(ValidationIssue(
                field="entries",
                issue_type="unbalanced",
                message=f"Debits ({debits:.2f}) must equal credits ({credits:.2f})",
                severity="error",
                suggested_fix=f"Adjust the entries by {abs(debits - credits):.2f}",
            ))

        account_ids = [entry.account_id for entry in entries]
        repeated = sorted({a for a in account_ids if account_ids.count(a) > 1})
        for account_id in repeated:
            issues.append(ValidationIssue(
                field="entries",
                issue_type="repeated_account",
                message=f"Account {account_id} appears in more than one entry",
                severity="warning",
            ))

        if not _has_errors(issues):
            issues.extend(self._currency_warnings(
                [accounts[account_id] for account_id in dict.fromkeys(account_ids)],
                details,
            ))

        return issues

    def validate_split(
        self,
        details: TransactionDetails,
        entries: list[SplitEntry],
        accounts: Mapping[str, Account],
    ) -> ValidationResult:
        """
        Run full two-stage validation of a multi-way split.

        Args:
            details: Header fields of the transaction
            entries: Caller-supplied debit/credit legs
            accounts: The book's accounts by id

        Returns:
            ValidationResult with all issues found
        """
        issues = self._validate_details_schema(details) + self._validate_split_schema(entries)
        return self._result(
            issues,
            lambda: self._validate_split_semantic(details, entries, accounts),
        )

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _currency_warnings(
        accounts: list[Account],
        details: TransactionDetails,
    ) -> list[ValidationIssue]:
        currencies = {account.currency for account in accounts}
        if details.currency:
            currencies.add(details.currency)
        if len(currencies) <= 1:
            return []
        listed = ", ".join(sorted(currency.value for currency in currencies))
        return [ValidationIssue(
            field="currency",
            issue_type="currency_mismatch",
            message=f"Transaction mixes currencies ({listed}); amounts are not converted",
            severity="warning",
        )]

    @staticmethod
    def _result(schema_issues: list[ValidationIssue], semantic) -> ValidationResult:
        all_issues = list(schema_issues)
        schema_valid = not _has_errors(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_issues = semantic()
            all_issues.extend(semantic_issues)
            semantic_valid = not _has_errors(semantic_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[issue.message for issue in all_issues if issue.severity == "warning"],
        )

    @staticmethod
    def raise_for_errors(result: ValidationResult) -> None:
        """Raise ValidationError carrying the error-level issues, if any."""
        if result.is_valid:
            return
        errors = [issue for issue in result.issues if issue.severity == "error"]
        raise ValidationError("; ".join(issue.message for issue in errors), issues=errors)

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the transaction form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if not result.is_valid:
            lines.append("❌ This transaction cannot be saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)


class _SignedEntry:
    """Adapts a caller entry to the split shape the balance rules read."""

    def __init__(self, value: Decimal):
        self.value = value
