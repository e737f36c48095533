"""
In-Memory Storage Implementation

Keeps every collection in a dict guarded by an asyncio.Lock. Used by the
test suite and by the `memory` storage backend.

A commit applies its operations to a deep copy of the data and swaps the
copy in only after every operation succeeded, so a failing batch leaves
no trace.
"""

import asyncio
import copy
from typing import Optional

import structlog

from ledgerbook.services.storage.interface import (
    DocumentStore,
    QueryFilter,
    WriteBatch,
    apply_operation,
    apply_query_options,
    matches_filters,
)


logger = structlog.get_logger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Dict-of-collections document store."""

    def __init__(self, initial: Optional[dict[str, dict[str, dict]]] = None):
        self._collections: dict[str, dict[str, dict]] = copy.deepcopy(initial or {})
        self._lock = asyncio.Lock()
        self.commit_count = 0

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        async with self._lock:
            document = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    async def query(
        self,
        collection: str,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        async with self._lock:
            documents = [
                copy.deepcopy(document)
                for document in self._collections.get(collection, {}).values()
                if matches_filters(document, filters)
            ]
        return apply_query_options(documents, order_by, descending, limit)

    async def commit(self, batch: WriteBatch) -> None:
        async with self._lock:
            staged = copy.deepcopy(self._collections)
            for op in batch.operations:
                apply_operation(staged, op)
            self._collections = staged
            self.commit_count += 1

        logger.debug("batch_committed", operations=len(batch))

    def dump(self) -> dict[str, dict[str, dict]]:
        """Snapshot of every collection, for inspection in tests."""
        return copy.deepcopy(self._collections)
