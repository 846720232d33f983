"""
Ingestion pass - fetch, deduplicate and store every category once.

Pipeline per category:
1. Wait the inter-request delay (not before the first category)
2. Fetch the latest batch through the rate-limited client
3. Screen each candidate (mandatory fields, fingerprint)
4. Build the Article (keywords, id, timestamps) and store it
5. Fold the stored count into the aggregate summary

Failures stay as local as possible: a bad article is skipped, a failed
category is skipped, and only upstream throttling stops the pass.
"""
import asyncio
import re
import time
from typing import Awaitable, Callable, Iterable, Optional

import structlog
from pydantic import ValidationError

from newsdesk.config import Settings, get_settings
from newsdesk.core.categories import category_collection
from newsdesk.errors import MalformedArticle, StorageWriteFailure
from newsdesk.models.domain import Article
from newsdesk.services.data_ingestion.base import (
    CategoryReport,
    PassReport,
    RawArticle,
    SkipEvent,
    SkipReason,
)
from newsdesk.services.data_ingestion.deduplicator import Deduplicator
from newsdesk.services.data_ingestion.keywords import extract_keywords
from newsdesk.services.data_ingestion.newsdata import NewsDataClient
from newsdesk.storage.base import DocumentStore
from newsdesk.storage.summary import SummaryRepository

logger = structlog.get_logger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9\s]")
_SLUG_SPACES = re.compile(r"\s+")
SLUG_LENGTH = 50


def make_article_id(title: str, timestamp_ms: int) -> str:
    """Title slug (ascii letters, digits, underscores) plus a millisecond stamp."""
    slug = _SLUG_SPACES.sub("_", _SLUG_STRIP.sub("", title.lower()))
    return f"{slug[:SLUG_LENGTH]}_{timestamp_ms}"


class IngestionPipeline:
    """Runs one ingestion pass over the configured categories."""

    def __init__(
        self,
        store: DocumentStore,
        client: NewsDataClient,
        settings: Optional[Settings] = None,
        deduplicator: Optional[Deduplicator] = None,
        summary: Optional[SummaryRepository] = None,
        categories: Optional[Iterable[str]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.client = client
        self.deduplicator = deduplicator or Deduplicator(
            store, threshold=self.settings.near_duplicate_threshold
        )
        self.summary = summary or SummaryRepository(store)
        self.categories = list(categories) if categories is not None else list(self.settings.categories)
        self._sleep = sleep or asyncio.sleep
        self._last_stamp = 0

    def _next_stamp(self) -> int:
        # Strictly increasing so two identical titles never share an id
        stamp = max(int(time.time() * 1000), self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp

    async def run_pass(self) -> PassReport:
        """Fetch and store every category once, in configured order."""
        start = time.monotonic()
        report = PassReport()
        requests_before = self.client.rate_limiter.request_count

        logger.info("Starting news fetch pass", categories=len(self.categories))
        await self.summary.ensure(self.categories, self.client.rate_limiter.snapshot())

        for index, category in enumerate(self.categories):
            if index > 0:
                logger.debug("Waiting before next request", seconds=self.settings.inter_request_delay_seconds)
                await self._sleep(self.settings.inter_request_delay_seconds)

            logger.info(
                "Fetching news for category",
                category=category,
                position=f"{index + 1}/{len(self.categories)}",
            )
            try:
                category_report, aborts_pass = await self.ingest_category(category)
            except Exception as e:
                logger.error("Error ingesting category", category=category, error=str(e), exc_info=True)
                category_report, aborts_pass = CategoryReport(category=category, error=str(e)), False

            report.categories.append(category_report)
            logger.info(str(category_report))

            if aborts_pass:
                report.aborted = True
                report.deferred = self.categories[index + 1:]
                logger.warning(
                    "Stopping due to rate limit, remaining categories deferred to next run",
                    deferred=report.deferred,
                )
                break

        # The window may have reset mid-pass, so this is a lower bound
        report.requests_made = max(self.client.rate_limiter.request_count - requests_before, 0)
        report.duration_seconds = time.monotonic() - start
        logger.info(
            "News fetch completed",
            articles_added=report.articles_new,
            successful_categories=f"{report.successful_categories}/{len(self.categories)}",
            skipped=len(report.skipped),
            aborted=report.aborted,
            duration_seconds=round(report.duration_seconds, 1),
        )
        return report

    async def ingest_category(self, category: str) -> tuple[CategoryReport, bool]:
        """
        Fetch and store one category.

        Returns:
            Tuple of (category report, whether the pass must stop)
        """
        start = time.monotonic()
        report = CategoryReport(category=category)

        result = await self.client.fetch(category)
        if result.error is not None:
            report.error = f"{type(result.error).__name__}: {result.error}"
            report.duration_seconds = time.monotonic() - start
            return report, result.aborts_pass

        report.articles_fetched = len(result.articles)
        if not result.articles:
            logger.info("No articles found for category", category=category)

        candidates = result.articles[:self.settings.max_articles_per_category]
        seen: set[str] = set()
        try:
            for position, raw in enumerate(candidates, start=1):
                try:
                    if await self._ingest_article(category, raw, seen, report):
                        report.articles_new += 1
                except MalformedArticle as e:
                    logger.warning("Skipping malformed article", category=category, position=position, error=str(e))
                    report.skipped.append(SkipEvent(
                        category, SkipReason.MALFORMED_ARTICLE, raw.title, detail=str(e)
                    ))
                except Exception as e:
                    logger.error(
                        "Error processing article",
                        category=category,
                        position=position,
                        title=(raw.title or "")[:60],
                        link=raw.link,
                        error=str(e),
                        exc_info=True,
                    )
                    report.skipped.append(SkipEvent(
                        category, SkipReason.ARTICLE_ERROR, raw.title, detail=f"{type(e).__name__}: {e}"
                    ))
        finally:
            # Runs on cancellation too, keeping counts in step with stored documents
            await self._record(category, report.articles_new)

        report.duration_seconds = time.monotonic() - start
        return report, False

    async def _ingest_article(
        self,
        category: str,
        raw: RawArticle,
        seen: set[str],
        report: CategoryReport,
    ) -> bool:
        verdict = await self.deduplicator.screen(category, raw, seen)
        if not verdict.accepted:
            event = SkipEvent(category, verdict.reason, raw.title, verdict.fingerprint, verdict.detail)
            report.skipped.append(event)
            if verdict.reason is SkipReason.DUPLICATE_FINGERPRINT:
                logger.info("Skipped duplicate", category=category, title=(raw.title or "")[:60], detail=verdict.detail)
            else:
                logger.warning("Skipping article: missing required fields", category=category, detail=verdict.detail)
            return False

        article = self.build_article(category, raw, verdict.fingerprint)
        collection = category_collection(category)
        try:
            await self.store.set(collection, article.id, article.to_document())
        except StorageWriteFailure as e:
            logger.error(
                "Failed to store article",
                collection=collection,
                article_id=article.id,
                fingerprint=article.fingerprint,
                title=article.title,
                link=article.link,
                error=str(e),
            )
            report.skipped.append(SkipEvent(
                category, SkipReason.STORAGE_WRITE_FAILURE, raw.title, verdict.fingerprint, str(e)
            ))
            return False

        seen.add(verdict.fingerprint)
        logger.info("Added article", category=category, title=article.title[:60])
        return True

    def build_article(self, category: str, raw: RawArticle, fp: str) -> Article:
        """Normalize a screened candidate into the stored Article shape."""
        try:
            return Article(
                id=make_article_id(raw.title, self._next_stamp()),
                title=raw.title,
                content=raw.body,
                description=raw.description or "",
                image_url=raw.image_url,
                link=raw.link,
                pub_date=raw.pub_date,
                source=raw.source_id or "unknown",
                category=category,
                keywords=extract_keywords(f"{raw.title} {raw.body}"),
                fingerprint=fp,
            )
        except (TypeError, ValidationError) as e:
            raise MalformedArticle(f"Cannot normalize article {raw.title!r}: {e}") from e

    async def _record(self, category: str, added: int):
        snapshot = self.client.rate_limiter.snapshot()
        try:
            if added:
                await self.summary.record_ingestion(category, added, snapshot)
                logger.info("Updated summary", category=category, added=added)
            else:
                await self.summary.record_rate_limit(snapshot)
        except StorageWriteFailure as e:
            logger.error("Error updating summary", category=category, added=added, error=str(e))
