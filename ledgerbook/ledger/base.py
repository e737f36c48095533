"""
Shared plumbing of the ledger services: collection paths, document
conversion and the commit step that turns storage errors into ledger errors.
"""

from typing import Any, Optional, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ledgerbook.audit import AuditLogger
from ledgerbook.config import LedgerSettings, get_settings
from ledgerbook.errors import NotFoundError, PersistenceError, ValidationError
from ledgerbook.models.audit import AuditEventBuilder
from ledgerbook.models.ledger import ValidationIssue
from ledgerbook.services.storage import (
    ConflictError,
    DocumentNotFoundError,
    DocumentStore,
    StorageError,
    WriteBatch,
)


BOOKS_COLLECTION = "books"

ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"
SPLITS = "splits"
CATEGORIES = "categories"
RECURRING = "recurring"
ACTIVITIES = "activities"

BOOK_COLLECTIONS = (ACCOUNTS, TRANSACTIONS, SPLITS, CATEGORIES, RECURRING, ACTIVITIES)

ModelT = TypeVar("ModelT", bound=BaseModel)


def collection_path(book_id: str, collection: str) -> str:
    """Book-scoped collection path, e.g. books/{book_id}/accounts."""
    return f"{BOOKS_COLLECTION}/{book_id}/{collection}"


def to_document(model) -> dict:
    return model.model_dump(mode="json")


def validated(model: type[ModelT], data: dict[str, Any], label: str) -> ModelT:
    """
    Build a record from caller input.

    Field limits the model enforces (lengths, blank names, unknown enum
    values) are reported as a ledger ValidationError, one issue per field.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        issues = [
            ValidationIssue(
                field=".".join(str(part) for part in error["loc"]) or label,
                issue_type="invalid_value",
                message=error["msg"],
                severity="error",
            )
            for error in e.errors()
        ]
        raise ValidationError(f"Invalid {label}: {issues[0].message}", issues=issues) from e


class LedgerService:
    """Base class wiring a document store, settings and the audit logger."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit = audit_logger or AuditLogger()
        self._logger = structlog.get_logger(self.__class__.__module__)

    async def _commit(
        self,
        batch: WriteBatch,
        operation: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        book_id: Optional[str] = None,
    ) -> None:
        """
        Commit a batch atomically.

        Raises:
            NotFoundError: a document the batch touches disappeared concurrently
            PersistenceError: the backend write failed, or a document changed
                since it was read (nothing was applied)
        """
        try:
            await self._store.commit(batch)
        except DocumentNotFoundError as e:
            self._logger.warning(
                "commit_target_missing",
                operation=operation,
                entity_id=entity_id,
                error=str(e),
            )
            raise NotFoundError(str(e)) from e
        except ConflictError as e:
            self._logger.warning(
                "commit_conflict",
                operation=operation,
                entity_id=entity_id,
                error=str(e),
            )
            raise PersistenceError(
                f"Failed to {operation.replace('_', ' ')}: {entity_type} {entity_id} "
                "was changed concurrently; reload and retry"
            ) from e
        except StorageError as e:
            self._logger.error(
                "commit_failed",
                operation=operation,
                entity_id=entity_id,
                error=str(e),
            )
            await self._audit.log(AuditEventBuilder.persistence_failed(
                book_id=book_id,
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                error_message=str(e),
            ))
            raise PersistenceError(f"Failed to {operation.replace('_', ' ')}: {e}") from e
