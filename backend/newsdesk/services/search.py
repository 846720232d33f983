"""
Keyword search collections.

A search reads every category collection twice (title prefix range and
keyword membership), merges the hits, scores them and stores the result as
its own collection so readers can page through it without re-querying.
Re-running a search replaces the previous collection for that keyword.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import structlog
from pydantic import ValidationError

from newsdesk.config import Settings, get_settings
from newsdesk.core.categories import (
    category_collection,
    normalize_keyword,
    search_collection,
)
from newsdesk.models.domain import SearchCollectionEntry, SearchHit, utcnow
from newsdesk.storage.base import DocumentStore, Query
from newsdesk.storage.summary import SummaryRepository

logger = structlog.get_logger(__name__)

PER_QUERY_LIMIT = 10

TITLE_MATCH_WEIGHT = 10
CONTENT_MATCH_WEIGHT = 2
KEYWORD_MATCH_WEIGHT = 5


@dataclass
class SearchOutcome:
    """Result of building a search collection."""
    collection_name: Optional[str]
    results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)

    @classmethod
    def empty(cls) -> "SearchOutcome":
        return cls(collection_name=None)


def relevance_score(article: dict[str, Any], keyword: str) -> int:
    """
    Weighted relevance of an article for a normalized keyword.

    Title containment counts 10, each occurrence in the content 2, and
    membership in the keyword list 5.
    """
    title = (article.get("title") or "").lower()
    content = (article.get("content") or "").lower()
    keywords = article.get("keywords") or []

    score = 0
    if keyword in title:
        score += TITLE_MATCH_WEIGHT
    score += CONTENT_MATCH_WEIGHT * len(re.findall(re.escape(keyword), content))
    if keyword in keywords:
        score += KEYWORD_MATCH_WEIGHT
    return score


class SearchCollectionBuilder:
    """Builds and reads keyword search collections."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        summary: Optional[SummaryRepository] = None,
        categories: Optional[Iterable[str]] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.summary = summary or SummaryRepository(store)
        self.categories = list(categories) if categories is not None else list(self.settings.categories)

    async def _matches_in(self, category: str, keyword: str, normalized: str) -> list[dict[str, Any]]:
        collection = category_collection(category)
        by_title = await self.store.query(
            collection, Query().where_prefix("title", keyword).take(PER_QUERY_LIMIT)
        )
        by_keyword = await self.store.query(
            collection,
            Query().where("keywords", "array-contains", normalized).take(PER_QUERY_LIMIT),
        )

        merged: dict[str, dict[str, Any]] = {}
        for doc in by_title + by_keyword:
            doc_id = doc.get("id")
            if isinstance(doc_id, str):
                merged[doc_id] = doc
        return list(merged.values())

    async def collect(self, keyword: str) -> list[dict[str, Any]]:
        """Matching articles across categories, unique by title."""
        normalized = normalize_keyword(keyword)
        found: list[dict[str, Any]] = []

        for category in self.categories:
            try:
                found.extend(await self._matches_in(category, keyword.strip(), normalized))
            except Exception as e:
                logger.error("Error searching in category", category=category, error=str(e))
                continue

        unique: list[dict[str, Any]] = []
        seen_titles: set[str] = set()
        for doc in found:
            title = doc.get("title")
            if title in seen_titles:
                continue
            seen_titles.add(title)
            unique.append(doc)
        return unique

    async def _clear(self, name: str) -> int:
        """Drop whatever an earlier run stored under ``name``."""
        previous = await self.store.query(name)
        stale = [d["id"] for d in previous if isinstance(d.get("id"), str)]
        if not stale:
            return 0
        return await self.store.delete_many(name, stale)

    async def build(self, keyword: str) -> SearchOutcome:
        """
        Search every category and persist the scored results.

        Re-running a keyword replaces its collection, so a re-run that finds
        nothing leaves the collection empty and its registry count at zero.

        Args:
            keyword: Free-text keyword as typed by the user

        Returns:
            SearchOutcome; ``collection_name`` is None when there was
            nothing to search for or nothing matched
        """
        normalized = normalize_keyword(keyword or "")
        if not normalized:
            logger.info("Empty search keyword")
            return SearchOutcome.empty()

        logger.info("Searching", keyword=keyword)
        results = await self.collect(keyword)
        logger.info("Found unique results", keyword=keyword, count=len(results))

        name = search_collection(normalized)
        created = utcnow()
        hits = []
        for doc in results:
            try:
                hit = SearchHit.model_validate({
                    **doc,
                    "searchKeyword": keyword,
                    "searchCreatedAt": created,
                    "relevanceScore": relevance_score(doc, normalized),
                })
            except ValidationError as e:
                logger.warning("Skipping unreadable article", article_id=doc.get("id"), error=str(e))
                continue
            hits.append(hit.to_document())

        removed = await self._clear(name)
        registered = name in ((await self.summary.get() or {}).get("searchCollections") or {})

        if not hits:
            if removed or registered:
                await self.summary.record_search(SearchCollectionEntry(
                    keyword=keyword,
                    result_count=0,
                    created_at=created,
                    collection_name=name,
                ))
                logger.info("Cleared search collection", collection=name, removed=removed)
            return SearchOutcome.empty()

        for hit in hits:
            await self.store.set(name, hit["id"], hit)

        await self.summary.record_search(SearchCollectionEntry(
            keyword=keyword,
            result_count=len(hits),
            created_at=created,
            collection_name=name,
        ))
        logger.info("Created search collection", collection=name, results=len(hits))
        return SearchOutcome(collection_name=name, results=hits)

    async def results(self, keyword: str) -> list[dict[str, Any]]:
        """Stored results for a keyword, most relevant (then newest) first."""
        normalized = normalize_keyword(keyword or "")
        if not normalized:
            return []
        return await self.store.query(
            search_collection(normalized),
            Query().order("relevanceScore", descending=True).order("createdAt", descending=True),
        )
