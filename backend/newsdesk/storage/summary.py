"""
Aggregate summary document.

A single document records per-category counts and timestamps, the registry
of search collections and a mirror of the rate limiter. Updates are additive
(increments and overwrites of individual fields) so concurrent readers never
see the document reset.
"""
from typing import Any, Iterable, Optional

import structlog

from newsdesk.core.categories import SUMMARY_COLLECTION, SUMMARY_DOCUMENT
from newsdesk.models.domain import (
    CategorySummary,
    RateLimitState,
    SearchCollectionEntry,
    utcnow,
)
from newsdesk.storage.base import DocumentStore

logger = structlog.get_logger(__name__)


class SummaryRepository:
    """Reads and updates the aggregate summary document."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def _update(
        self,
        changes: Optional[dict[str, Any]] = None,
        increments: Optional[dict[str, float]] = None,
    ) -> dict[str, Any]:
        return await self.store.update(
            SUMMARY_COLLECTION, SUMMARY_DOCUMENT, changes=changes, increments=increments
        )

    async def get(self) -> Optional[dict[str, Any]]:
        return await self.store.get(SUMMARY_COLLECTION, SUMMARY_DOCUMENT)

    async def ensure(
        self,
        categories: Iterable[str],
        rate_limit: Optional[RateLimitState] = None,
    ) -> dict[str, Any]:
        """
        Make sure the summary and every category entry exist.

        Existing counts are left untouched; only missing entries are created.
        """
        categories = list(categories)
        current = await self.get() or {}
        known = current.get("categories") or {}
        now = utcnow().isoformat()

        changes: dict[str, Any] = {
            "totalCategories": len(categories),
            "lastUpdated": now,
        }
        for category in categories:
            if category not in known:
                changes[f"categories.{category}"] = CategorySummary(name=category).to_document()
        if "searchCollections" not in current:
            changes["searchCollections"] = {}
        if rate_limit is not None:
            changes["rateLimit"] = rate_limit.to_document()

        return await self._update(changes)

    async def record_ingestion(
        self,
        category: str,
        added: int,
        rate_limit: Optional[RateLimitState] = None,
    ) -> dict[str, Any]:
        """Fold a category's newly stored articles into the summary."""
        now = utcnow().isoformat()
        changes: dict[str, Any] = {
            f"categories.{category}.name": category,
            f"categories.{category}.lastUpdated": now,
            "lastUpdated": now,
        }
        if rate_limit is not None:
            changes["rateLimit"] = rate_limit.to_document()

        return await self._update(changes, {f"categories.{category}.articleCount": added})

    async def record_removal(self, category: str, removed: int) -> dict[str, Any]:
        """Subtract purged articles from a category count."""
        now = utcnow().isoformat()
        return await self._update(
            {f"categories.{category}.lastUpdated": now, "lastUpdated": now},
            {f"categories.{category}.articleCount": -removed},
        )

    async def record_search(self, entry: SearchCollectionEntry) -> dict[str, Any]:
        """Register (or replace) a search collection."""
        return await self._update({
            f"searchCollections.{entry.collection_name}": entry.to_document(),
            "lastSearchUpdate": utcnow().isoformat(),
        })

    async def record_rate_limit(self, rate_limit: RateLimitState) -> dict[str, Any]:
        return await self._update({"rateLimit": rate_limit.to_document()})

    async def stats(self) -> Optional[dict[str, Any]]:
        """Totals derived from the summary, or None before the first pass."""
        data = await self.get()
        if not data:
            return None

        categories = data.get("categories") or {}
        return {
            "totalArticles": sum(c.get("articleCount", 0) for c in categories.values()),
            "categoriesCount": len(categories),
            "searchCollectionsCount": len(data.get("searchCollections") or {}),
            "lastUpdated": data.get("lastUpdated"),
            "rateLimit": data.get("rateLimit"),
            "categoryBreakdown": [
                {
                    "name": c.get("name", key),
                    "count": c.get("articleCount", 0),
                    "lastUpdated": c.get("lastUpdated"),
                }
                for key, c in sorted(categories.items())
            ],
        }
