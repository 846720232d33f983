"""
In-process document store.

Used by the test suite and for dry runs (``--memory`` on the CLI). Documents
are deep-copied on the way in and out so callers never share state with the
store.
"""
import asyncio
import copy
from collections import defaultdict
from typing import Any, Iterable, Optional

from newsdesk.storage.base import (
    DocumentStore,
    Query,
    apply_updates,
    matches,
    sort_documents,
)


class MemoryDocumentStore(DocumentStore):
    """Dict-of-dicts store preserving insertion order per collection."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._lock = asyncio.Lock()

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        async with self._lock:
            self._collections[collection][doc_id] = copy.deepcopy(data)

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def query(self, collection: str, query: Optional[Query] = None) -> list[dict[str, Any]]:
        query = query or Query()
        docs = [
            doc for doc in self._collections.get(collection, {}).values()
            if all(matches(doc, f) for f in query.filters)
        ]
        if query.order_by:
            docs = sort_documents(docs, query.order_by)
        if query.limit is not None:
            docs = docs[:query.limit]
        return copy.deepcopy(docs)

    async def delete_many(self, collection: str, doc_ids: Iterable[str]) -> int:
        async with self._lock:
            docs = self._collections.get(collection, {})
            deleted = 0
            for doc_id in set(doc_ids):
                if docs.pop(doc_id, None) is not None:
                    deleted += 1
            return deleted

    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: Optional[dict[str, Any]] = None,
        increments: Optional[dict[str, float]] = None,
    ) -> dict[str, Any]:
        async with self._lock:
            doc = self._collections[collection].setdefault(doc_id, {})
            apply_updates(doc, copy.deepcopy(changes), increments)
            return copy.deepcopy(doc)

    def collections(self) -> list[str]:
        """Names of collections holding at least one document."""
        return sorted(name for name, docs in self._collections.items() if docs)
