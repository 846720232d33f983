"""
Out-of-band maintenance over category collections.

Three purges, each committed as one batched delete per category:
- purge_all: every article
- purge_bad: articles with no image reference
- purge_near_duplicates: later-published retellings of the same story

Every purge subtracts what it removed from the summary counts.
"""
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import structlog

from newsdesk.core.categories import all_categories, category_collection
from newsdesk.services.data_ingestion.deduplicator import (
    DEFAULT_SIMILARITY_THRESHOLD,
    Deduplicator,
)
from newsdesk.storage.base import DocumentStore
from newsdesk.storage.summary import SummaryRepository

logger = structlog.get_logger(__name__)


@dataclass
class PurgeReport:
    """Documents removed per category."""
    name: str
    deleted: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.deleted.values())


class MaintenanceService:
    """Bulk deletions that keep the aggregate summary consistent."""

    def __init__(
        self,
        store: DocumentStore,
        categories: Optional[Iterable[str]] = None,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        summary: Optional[SummaryRepository] = None,
    ):
        self.store = store
        self.categories = list(categories) if categories is not None else all_categories()
        self.deduplicator = Deduplicator(store, threshold=threshold)
        self.summary = summary or SummaryRepository(store)

    async def _delete(self, report: PurgeReport, category: str, doc_ids: list[str]):
        if not doc_ids:
            logger.info("Nothing to delete", purge=report.name, category=category)
            return

        deleted = await self.store.delete_many(category_collection(category), doc_ids)
        report.deleted[category] = deleted
        if deleted:
            await self.summary.record_removal(category, deleted)
        logger.info("Deleted articles", purge=report.name, category=category, deleted=deleted)

    async def _sweep(self, name: str, select_ids: Callable) -> PurgeReport:
        report = PurgeReport(name=name)
        for category in self.categories:
            try:
                doc_ids = await select_ids(category)
                await self._delete(report, category, doc_ids)
            except Exception as e:
                logger.error("Purge failed for category", purge=name, category=category, error=str(e))
                report.errors[category] = str(e)

        logger.info("Purge finished", purge=name, total_deleted=report.total)
        return report

    async def _ids(self, category: str, keep=lambda doc: False) -> list[str]:
        docs = await self.store.query(category_collection(category))
        return [d["id"] for d in docs if isinstance(d.get("id"), str) and not keep(d)]

    async def purge_all(self) -> PurgeReport:
        """Delete every article of every category."""
        return await self._sweep("all", self._ids)

    async def purge_bad(self) -> PurgeReport:
        """Delete articles whose image reference is missing or empty."""
        async def without_image(category: str) -> list[str]:
            return await self._ids(category, keep=lambda doc: bool(doc.get("imageUrl")))

        return await self._sweep("bad", without_image)

    async def purge_near_duplicates(self) -> PurgeReport:
        """Delete the later-published article of every near-duplicate pair."""
        async def near_duplicates(category: str) -> list[str]:
            decisions = await self.deduplicator.near_duplicates_in(category)
            return [d.removed.id for d in decisions]

        return await self._sweep("near_duplicates", near_duplicates)
