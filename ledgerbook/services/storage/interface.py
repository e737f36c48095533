"""
Abstract Storage Interface

DESIGN DECISION: The ledger talks to a small document-store interface rather
than to a concrete database. This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

The interface is intentionally small - point reads, filtered queries and an
atomic batch commit are everything the ledger needs. Documents are plain
JSON-compatible dicts keyed by collection path and document id.
"""

import copy
import operator
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field


# =============================================================================
# QUERIES
# =============================================================================

class QueryFilter(BaseModel):
    """A single `field <operator> value` condition."""

    field: str
    operator: str = Field(
        default="==",
        pattern=r"^(==|!=|<|<=|>|>=|in|array-contains)$",
    )
    value: Any = None


_COMPARISONS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _lookup(document: dict, field: str) -> Any:
    """Resolve a dotted field path such as `template.type`."""
    value: Any = document
    for part in field.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def matches_filters(document: dict, filters: Optional[Iterable[QueryFilter]]) -> bool:
    for condition in filters or ():
        value = _lookup(document, condition.field)
        if condition.operator == "in":
            if value not in condition.value:
                return False
        elif condition.operator == "array-contains":
            if not isinstance(value, list) or condition.value not in value:
                return False
        else:
            if value is None and condition.operator not in ("==", "!="):
                return False
            try:
                if not _COMPARISONS[condition.operator](value, condition.value):
                    return False
            except TypeError:
                return False
    return True


def _sort_key(value: Any) -> tuple:
    return (value is None, "" if value is None else value)


def apply_query_options(
    documents: list[dict],
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> list[dict]:
    """Sort and truncate an already filtered result set."""
    if order_by:
        documents = sorted(
            documents,
            key=lambda doc: _sort_key(_lookup(doc, order_by)),
            reverse=descending,
        )
    if limit is not None:
        documents = documents[:limit]
    return documents


# =============================================================================
# WRITE BATCHES
# =============================================================================

class BatchOperation(BaseModel):
    """One staged write of a WriteBatch."""

    op_type: str = Field(..., pattern=r"^(create|set|update|delete|increment)$")
    collection: str
    doc_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    expected: Optional[dict[str, Any]] = Field(
        default=None,
        description="Field values that must still hold at commit time (set, update, delete)"
    )


class WriteBatch:
    """
    Ordered list of writes committed as one atomic unit.

    Increments on the same document and field are merged, so a batch carries
    at most one relative delta per account balance.
    """

    def __init__(self):
        self._operations: list[BatchOperation] = []

    @property
    def operations(self) -> list[BatchOperation]:
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def create(self, collection: str, doc_id: str, data: dict) -> "WriteBatch":
        self._operations.append(BatchOperation(
            op_type="create", collection=collection, doc_id=doc_id, data=data,
        ))
        return self

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict,
        expected: Optional[dict] = None,
    ) -> "WriteBatch":
        """Replace a document; with `expected`, the document must exist and still match."""
        self._operations.append(BatchOperation(
            op_type="set",
            collection=collection,
            doc_id=doc_id,
            data=data,
            expected=expected,
        ))
        return self

    def update(
        self,
        collection: str,
        doc_id: str,
        data: dict,
        expected: Optional[dict] = None,
    ) -> "WriteBatch":
        self._operations.append(BatchOperation(
            op_type="update",
            collection=collection,
            doc_id=doc_id,
            data=data,
            expected=expected,
        ))
        return self

    def increment(self, collection: str, doc_id: str, field: str, delta) -> "WriteBatch":
        """Add a relative numeric delta to `field`, applied to the value present at commit time."""
        for op in self._operations:
            if (
                op.op_type == "increment"
                and op.collection == collection
                and op.doc_id == doc_id
                and field in op.data
            ):
                op.data[field] = str(_to_number(op.data[field]) + _to_number(delta))
                return self
        self._operations.append(BatchOperation(
            op_type="increment",
            collection=collection,
            doc_id=doc_id,
            data={field: str(delta)},
        ))
        return self

    def delete(
        self,
        collection: str,
        doc_id: str,
        expected: Optional[dict] = None,
    ) -> "WriteBatch":
        self._operations.append(BatchOperation(
            op_type="delete",
            collection=collection,
            doc_id=doc_id,
            expected=expected,
        ))
        return self


def _to_number(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def _check_expected(op: BatchOperation, existing: dict) -> None:
    for field, value in (op.expected or {}).items():
        if existing.get(field) != value:
            raise ConflictError(
                f"Precondition failed on {op.collection}/{op.doc_id}: "
                f"{field} is {existing.get(field)!r}, expected {value!r}"
            )


def apply_operation(collections: dict[str, dict[str, dict]], op: BatchOperation) -> None:
    """
    Apply one batch operation to a `{collection: {doc_id: document}}` map.

    Shared by the in-memory backend and by backends that validate a batch
    against a snapshot before sending it.

    Raises:
        DuplicateError: create on an existing document
        DocumentNotFoundError: update/increment/delete on a missing document,
            or a guarded set whose document is gone
        ConflictError: an `expected` precondition did not hold
    """
    documents = collections.setdefault(op.collection, {})
    existing = documents.get(op.doc_id)

    if op.op_type == "create":
        if existing is not None:
            raise DuplicateError(f"Document already exists: {op.collection}/{op.doc_id}")
        documents[op.doc_id] = {**copy.deepcopy(op.data), "id": op.doc_id}
    elif op.op_type == "set":
        if op.expected:
            if existing is None:
                raise DocumentNotFoundError(f"Document not found: {op.collection}/{op.doc_id}")
            _check_expected(op, existing)
        documents[op.doc_id] = {**copy.deepcopy(op.data), "id": op.doc_id}
    elif op.op_type == "delete":
        if existing is None:
            raise DocumentNotFoundError(f"Document not found: {op.collection}/{op.doc_id}")
        _check_expected(op, existing)
        del documents[op.doc_id]
    else:
        if existing is None:
            raise DocumentNotFoundError(f"Document not found: {op.collection}/{op.doc_id}")
        if op.op_type == "update":
            _check_expected(op, existing)
            existing.update(copy.deepcopy(op.data))
        else:
            for field, delta in op.data.items():
                existing[field] = str(_to_number(existing.get(field)) + _to_number(delta))


# =============================================================================
# STORE INTERFACE
# =============================================================================

class DocumentStore(ABC):
    """
    Abstract interface for document storage.

    Any storage implementation (Google Sheets, in-memory, a real database)
    must implement these methods.
    """

    def batch(self) -> WriteBatch:
        """Start an empty write batch."""
        return WriteBatch()

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """
        Retrieve a document by its id.

        Args:
            collection: Collection path, e.g. books/{book_id}/accounts
            doc_id: The document's identifier

        Returns:
            A copy of the document if found, None otherwise
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        List documents of a collection with optional filters.

        Args:
            collection: Collection path
            filters: Conditions that must all hold
            order_by: Field to sort on
            descending: Sort direction
            limit: Maximum number of results

        Returns:
            List of matching documents (copies)
        """
        pass

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """
        Apply every operation of the batch as one atomic unit.

        Either all operations become visible or none do.

        Raises:
            DuplicateError: create on an existing document
            DocumentNotFoundError: update/increment/delete on a missing document
            ConflictError: an update precondition did not hold
            StorageError: the backend write failed
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DocumentNotFoundError(StorageError):
    """Document not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate document."""
    pass


class ConflictError(StorageError):
    """An update precondition did not hold at commit time."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
