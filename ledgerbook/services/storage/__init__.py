"""
Storage Services Package

Provides the abstract document-store interface and its implementations.
The in-memory store backs tests; Google Sheets is the hosted backend.
"""

from ledgerbook.services.storage.interface import (
    BatchOperation,
    ConflictError,
    ConnectionError,
    DocumentNotFoundError,
    DocumentStore,
    DuplicateError,
    QueryFilter,
    StorageError,
    WriteBatch,
)
from ledgerbook.services.storage.memory import InMemoryDocumentStore
from ledgerbook.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interface
    "BatchOperation",
    "DocumentStore",
    "QueryFilter",
    "WriteBatch",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DocumentNotFoundError",
    "DuplicateError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
]
