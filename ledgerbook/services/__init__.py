"""Services package."""

from ledgerbook.services.storage import (
    BatchOperation,
    ConflictError,
    ConnectionError,
    DocumentNotFoundError,
    DocumentStore,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    QueryFilter,
    StorageError,
    WriteBatch,
)

__all__ = [
    "BatchOperation",
    "ConflictError",
    "ConnectionError",
    "DocumentNotFoundError",
    "DocumentStore",
    "DuplicateError",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
    "QueryFilter",
    "StorageError",
    "WriteBatch",
]
