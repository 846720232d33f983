"""
Duplicate elimination for category collections.

Two strategies:

1. Exact: a candidate whose fingerprint is already stored in the category,
   or was accepted earlier in the same batch, is dropped before any write.
2. Near-duplicate sweep (maintenance time): titles of stored articles are
   compared pairwise; when similarity exceeds the threshold the later
   published article is removed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, NamedTuple, Optional

import structlog

from newsdesk.core.categories import category_collection
from newsdesk.models.domain import parse_pub_date
from newsdesk.services.data_ingestion.base import RawArticle, SkipEvent, SkipReason
from newsdesk.services.data_ingestion.fingerprint import fingerprint
from newsdesk.services.data_ingestion.similarity import title_similarity
from newsdesk.storage.base import DocumentStore, Query

logger = structlog.get_logger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85

# Undated articles sort after every dated one, so they lose tie-breaks
_UNDATED = datetime.max.replace(tzinfo=timezone.utc)


@dataclass
class Screening:
    """Verdict for one candidate article."""
    fingerprint: str
    reason: Optional[SkipReason] = None
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.reason is None


@dataclass
class DedupOutcome:
    """Accepted candidates (with fingerprints) and the rejected ones."""
    accepted: list[tuple[RawArticle, str]] = field(default_factory=list)
    rejected: list[SkipEvent] = field(default_factory=list)


class StoredTitle(NamedTuple):
    """The fields of a stored article the sweep looks at."""
    id: str
    title: str
    pub_date: Optional[str]

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Optional["StoredTitle"]:
        doc_id = doc.get("id")
        title = doc.get("title")
        if not isinstance(doc_id, str) or not isinstance(title, str):
            return None
        pub_date = doc.get("pubDate")
        return cls(doc_id, title, pub_date if isinstance(pub_date, str) else None)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return parse_pub_date(self.pub_date) or _UNDATED, self.id


@dataclass
class NearDuplicate:
    """One deletion decision of the sweep."""
    removed: StoredTitle
    kept: StoredTitle
    similarity: float


def missing_fields(raw: RawArticle) -> list[str]:
    """Mandatory fields absent from a candidate."""
    missing = []
    if not raw.title:
        missing.append("title")
    if not raw.image_url:
        missing.append("image_url")
    return missing


class Deduplicator:
    """Exact and near-duplicate detection against a DocumentStore."""

    def __init__(
        self,
        store: DocumentStore,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ):
        self.store = store
        self.threshold = threshold

    async def fingerprint_exists(self, category: str, fp: str) -> bool:
        docs = await self.store.query(
            category_collection(category),
            Query().where("fingerprint", "==", fp).take(1),
        )
        return bool(docs)

    async def screen(
        self,
        category: str,
        raw: RawArticle,
        seen: Optional[set[str]] = None,
    ) -> Screening:
        """
        Decide whether a candidate may be stored.

        Args:
            category: Target category
            raw: Candidate from the provider
            seen: Fingerprints already accepted in this batch

        Returns:
            Screening with ``reason`` set when the candidate must be skipped
        """
        fp = fingerprint(raw.title, raw.link, raw.pub_date)

        missing = missing_fields(raw)
        if missing:
            return Screening(fp, SkipReason.MALFORMED_ARTICLE, f"missing {', '.join(missing)}")

        if seen is not None and fp in seen:
            return Screening(fp, SkipReason.DUPLICATE_FINGERPRINT, "duplicate within batch")

        if await self.fingerprint_exists(category, fp):
            return Screening(fp, SkipReason.DUPLICATE_FINGERPRINT, "already stored")

        return Screening(fp)

    async def filter_batch(self, category: str, candidates: Iterable[RawArticle]) -> DedupOutcome:
        """Screen a whole batch, in order, without writing anything."""
        outcome = DedupOutcome()
        seen: set[str] = set()

        for raw in candidates:
            verdict = await self.screen(category, raw, seen)
            if verdict.accepted:
                seen.add(verdict.fingerprint)
                outcome.accepted.append((raw, verdict.fingerprint))
            else:
                outcome.rejected.append(SkipEvent(
                    category=category,
                    reason=verdict.reason,
                    title=raw.title,
                    fingerprint=verdict.fingerprint,
                    detail=verdict.detail,
                ))

        return outcome

    def find_near_duplicates(self, articles: Iterable[StoredTitle]) -> list[NearDuplicate]:
        """
        Pairwise title comparison over one category.

        For every unordered pair with similarity above the threshold the
        article with the later publish date is marked (undated counts as
        latest, equal dates fall back to the larger id). A marked article
        takes no part in further comparisons. O(n^2) comparisons.
        """
        items = list(articles)
        marked: set[str] = set()
        decisions: list[NearDuplicate] = []

        for i, first in enumerate(items):
            if first.id in marked:
                continue
            for second in items[i + 1:]:
                if first.id in marked:
                    break
                if second.id in marked:
                    continue

                similarity = title_similarity(first.title, second.title)
                if similarity <= self.threshold:
                    continue

                removed, kept = (
                    (first, second) if first.sort_key > second.sort_key else (second, first)
                )
                marked.add(removed.id)
                decisions.append(NearDuplicate(removed, kept, similarity))
                logger.info(
                    "Found similar titles",
                    similarity=round(similarity, 3),
                    kept=kept.title,
                    removed=removed.title,
                )

        return decisions

    async def near_duplicates_in(self, category: str) -> list[NearDuplicate]:
        """Load a stored category and run the pairwise comparison over it."""
        docs = await self.store.query(category_collection(category))
        titles = [t for t in (StoredTitle.from_document(d) for d in docs) if t is not None]
        return self.find_near_duplicates(titles)
