"""
Audit Models for the ledger

Every mutation of a book is logged for audit purposes.
This provides:
1. Complete traceability of balance changes
2. Debugging information when a commit fails
3. A manual-reconciliation trail for recurring schedules

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Audit events are written after the ledger commit and are not part of it.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger mutation has its own event type.
    """
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_REJECTED = "transaction_rejected"

    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Books
    BOOK_CREATED = "book_created"
    BOOK_DELETED = "book_deleted"
    BOOK_SEEDED = "book_seeded"
    SEED_ITEM_FAILED = "seed_item_failed"

    # Recurring
    RECURRING_MATERIALIZED = "recurring_materialized"
    SCHEDULE_CONSISTENCY_FAILED = "schedule_consistency_failed"

    # System events
    PERSISTENCE_FAILED = "persistence_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    book_id: Optional[str] = Field(
        default=None,
        description="Book the entity belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'recurring')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one recurring processing pass)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "book_id": self.book_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_document(self) -> dict:
        """Convert to a JSON-compatible document for the audit_log collection."""
        return {"id": str(self.event_id), **self.model_dump(mode="json")}


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(book_id, txn_id, "Lunch", 2)
        event = AuditEventBuilder.account_deleted(book_id, account_id, "Cash", 3)
    """

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @staticmethod
    def transaction_created(
        book_id: str,
        transaction_id: str,
        description: str,
        split_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            book_id=book_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {description or transaction_id}"[:500],
            details={"split_count": split_count},
            is_user_action=correlation_id is None,
        )

    @staticmethod
    def transaction_updated(
        book_id: str,
        transaction_id: str,
        balance_deltas: dict[str, str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            book_id=book_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction updated: {transaction_id}",
            details={"balance_deltas": balance_deltas},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        book_id: str,
        transaction_id: str,
        balance_deltas: dict[str, str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            book_id=book_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction deleted: {transaction_id}",
            details={"balance_deltas": balance_deltas},
            is_user_action=True,
        )

    @staticmethod
    def transaction_rejected(
        book_id: str,
        operation: str,
        issues: list[dict],
        transaction_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            book_id=book_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"{operation.capitalize()} rejected with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
            is_user_action=True,
        )

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @staticmethod
    def account_created(
        book_id: str,
        account_id: str,
        name: str,
        account_type: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            book_id=book_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account created: {name}",
            details={"type": account_type},
            is_user_action=True,
        )

    @staticmethod
    def account_updated(
        book_id: str,
        account_id: str,
        changes: dict[str, Any],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            book_id=book_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account updated: {', '.join(sorted(changes)) or 'no changes'}",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(
        book_id: str,
        account_id: str,
        name: str,
        cascaded_transactions: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            book_id=book_id,
            entity_type="account",
            entity_id=account_id,
            description=(
                f"Account deleted: {name} "
                f"({cascaded_transactions} transactions removed)"
            ),
            details={"cascaded_transactions": cascaded_transactions},
            is_user_action=True,
        )

    # -------------------------------------------------------------------------
    # Books
    # -------------------------------------------------------------------------

    @staticmethod
    def book_created(book_id: str, name: str, is_default: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BOOK_CREATED,
            book_id=book_id,
            entity_type="book",
            entity_id=book_id,
            description=f"Book created: {name}",
            details={"is_default": is_default},
            is_user_action=True,
        )

    @staticmethod
    def book_deleted(book_id: str, removed_documents: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BOOK_DELETED,
            book_id=book_id,
            entity_type="book",
            entity_id=book_id,
            description=f"Book deleted with {removed_documents} documents",
            details={"removed_documents": removed_documents},
            is_user_action=True,
        )

    @staticmethod
    def book_seeded(book_id: str, created: int, failed: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BOOK_SEEDED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            book_id=book_id,
            entity_type="book",
            entity_id=book_id,
            description=f"Book seeded: {created} items created, {failed} failed",
            details={"created": created, "failed": failed},
        )

    @staticmethod
    def seed_item_failed(
        book_id: str,
        item_type: str,
        item_name: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SEED_ITEM_FAILED,
            severity=AuditSeverity.WARNING,
            book_id=book_id,
            entity_type=item_type,
            description=f"Default {item_type} could not be created: {item_name}",
            details={"item_name": item_name},
            error_message=error_message,
        )

    # -------------------------------------------------------------------------
    # Recurring
    # -------------------------------------------------------------------------

    @staticmethod
    def recurring_materialized(
        book_id: str,
        recurring_id: str,
        transaction_id: str,
        occurrence: date,
        next_run: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_MATERIALIZED,
            book_id=book_id,
            entity_type="recurring",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Recurring occurrence {occurrence.isoformat()} materialized",
            details={
                "transaction_id": transaction_id,
                "occurrence": occurrence.isoformat(),
                "next_run": next_run.isoformat(),
            },
        )

    @staticmethod
    def schedule_consistency_failed(
        book_id: str,
        recurring_id: str,
        occurrence: date,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_CONSISTENCY_FAILED,
            severity=AuditSeverity.ERROR,
            book_id=book_id,
            entity_type="recurring",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=(
                f"Recurring occurrence {occurrence.isoformat()} could not be committed; "
                "needs manual reconciliation"
            ),
            details={"occurrence": occurrence.isoformat()},
            error_code="SCHEDULE_CONSISTENCY",
            error_message=error_message,
        )

    # -------------------------------------------------------------------------
    # System
    # -------------------------------------------------------------------------

    @staticmethod
    def persistence_failed(
        book_id: Optional[str],
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            book_id=book_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Commit failed during {operation}",
            details={"operation": operation},
            error_code="PERSISTENCE_FAILED",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            error_code=error_type,
            error_message=error_message,
        )
