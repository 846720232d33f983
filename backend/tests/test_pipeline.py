"""
Tests for ingestion passes, end to end over the in-memory store.
"""

import asyncio

import httpx
import pytest

from conftest import provider_record, success_payload
from newsdesk.core.categories import category_collection
from newsdesk.errors import StorageWriteFailure
from newsdesk.services.data_ingestion import IngestionPipeline, SkipReason
from newsdesk.storage import MemoryDocumentStore, SummaryRepository


def by_category(replies: dict[str, tuple]):
    """Handler answering each category with a fresh response built from (status, body)."""
    def handler(request: httpx.Request) -> httpx.Response:
        status_code, body = replies[request.url.params["category"]]
        if body is None:
            return httpx.Response(status_code)
        return httpx.Response(status_code, json=body)
    return handler


def ok(*records) -> tuple:
    return 200, success_payload(list(records))


def status(code: int) -> tuple:
    return code, None


class FailingWrites(MemoryDocumentStore):
    """Store whose article writes fail for one title."""

    def __init__(self, bad_title: str):
        super().__init__()
        self.bad_title = bad_title

    async def set(self, collection, doc_id, data):
        if data.get("title") == self.bad_title:
            raise StorageWriteFailure("disk full", collection, doc_id)
        await super().set(collection, doc_id, data)


class FlakyLookup(MemoryDocumentStore):
    """Store whose first category query fails, as a dropped connection would."""

    def __init__(self):
        super().__init__()
        self.failed = False

    async def query(self, collection, query=None):
        if collection.startswith("news_") and not self.failed:
            self.failed = True
            raise ConnectionError("lookup timed out")
        return await super().query(collection, query)


class CancelledAfterFirstWrite(MemoryDocumentStore):
    """Store that cancels the pass while writing the second article."""

    def __init__(self):
        super().__init__()
        self.writes = 0

    async def set(self, collection, doc_id, data):
        if collection.startswith("news_"):
            self.writes += 1
            if self.writes > 1:
                raise asyncio.CancelledError()
        await super().set(collection, doc_id, data)


class TestIngestCategory:
    """Tests for a single category within a pass."""

    @pytest.mark.asyncio
    async def test_good_malformed_and_duplicate(self, store, settings, make_client, pass_sleep):
        good = provider_record()
        client = make_client(by_category({"business": ok(
            good,
            provider_record(title=None, link="https://example.com/untitled"),
            dict(good),
        )}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        report = await pipeline.run_pass()

        stored = await store.query(category_collection("business"))
        assert len(stored) == 1
        assert stored[0]["title"] == "Markets rally as inflation cools"

        category = report.categories[0]
        assert category.articles_fetched == 3
        assert category.articles_new == 1
        assert [s.reason for s in category.skipped] == [
            SkipReason.MALFORMED_ARTICLE,
            SkipReason.DUPLICATE_FINGERPRINT,
        ]
        assert report.articles_new == 1
        assert not report.aborted

    @pytest.mark.asyncio
    async def test_duplicate_of_already_stored_article(self, store, settings, make_client, pass_sleep):
        stored = provider_record(title="Storm hits coast", link="https://example.com/storm")
        first = make_client(by_category({"business": ok(stored)}))
        await IngestionPipeline(store, first, settings, sleep=pass_sleep).run_pass()

        second = make_client(by_category({"business": ok(
            provider_record(),
            provider_record(title=None, link="https://example.com/untitled"),
            dict(stored),
        )}))
        report = await IngestionPipeline(store, second, settings, sleep=pass_sleep).run_pass()

        category = report.categories[0]
        assert category.articles_new == 1
        assert [s.reason for s in category.skipped] == [
            SkipReason.MALFORMED_ARTICLE,
            SkipReason.DUPLICATE_FINGERPRINT,
        ]
        assert category.skipped[1].detail == "already stored"
        assert len(await store.query(category_collection("business"))) == 2

        summary = await SummaryRepository(store).get()
        assert summary["categories"]["business"]["articleCount"] == 2

    @pytest.mark.asyncio
    async def test_stored_document_shape(self, store, settings, make_client, pass_sleep):
        client = make_client(by_category({"business": ok(provider_record())}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        await pipeline.run_pass()

        doc = (await store.query(category_collection("business")))[0]
        assert doc["id"].startswith("markets_rally_as_inflation_cools_")
        assert doc["imageUrl"] == "https://example.com/img/markets.jpg"
        assert doc["pubDate"] == "2024-05-01 08:00:00"
        assert doc["source"] == "example_news"
        assert doc["category"] == "business"
        assert doc["searchable"] is True
        assert doc["content"].startswith("Stocks climbed on Tuesday after")
        assert doc["keywords"][:4] == ["markets", "rally", "inflation", "cools"]
        assert len(doc["keywords"]) <= 10
        assert len(doc["fingerprint"]) == 32
        assert "createdAt" in doc

    @pytest.mark.asyncio
    async def test_description_stands_in_for_missing_content(self, store, settings, make_client, pass_sleep):
        client = make_client(by_category({"business": ok(provider_record(content=None))}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        await pipeline.run_pass()

        doc = (await store.query(category_collection("business")))[0]
        assert doc["content"] == "Stocks climbed on Tuesday."

    @pytest.mark.asyncio
    async def test_second_pass_stores_nothing_new(self, store, settings, make_client, pass_sleep):
        client = make_client(by_category({"business": ok(provider_record())}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        await pipeline.run_pass()
        report = await pipeline.run_pass()

        assert report.articles_new == 0
        assert report.categories[0].skipped[0].detail == "already stored"
        assert len(await store.query(category_collection("business"))) == 1

        summary = await SummaryRepository(store).get()
        assert summary["categories"]["business"]["articleCount"] == 1

    @pytest.mark.asyncio
    async def test_candidates_capped_per_category(self, store, settings, make_client, pass_sleep):
        records = [
            provider_record(title=f"Story number {i}", link=f"https://example.com/{i}")
            for i in range(25)
        ]
        client = make_client(by_category({"business": ok(*records)}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        report = await pipeline.run_pass()

        assert report.categories[0].articles_fetched == 25
        assert report.articles_new == 20

    @pytest.mark.asyncio
    async def test_identical_titles_get_distinct_ids(self, store, settings, make_client, pass_sleep):
        client = make_client(by_category({"business": ok(
            provider_record(link="https://example.com/a"),
            provider_record(link="https://example.com/b"),
        )}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        report = await pipeline.run_pass()

        assert report.articles_new == 2
        ids = [d["id"] for d in await store.query(category_collection("business"))]
        assert len(set(ids)) == 2

    @pytest.mark.asyncio
    async def test_write_failure_skips_only_that_article(self, settings, make_client, pass_sleep):
        store = FailingWrites(bad_title="Broken story")
        client = make_client(by_category({"business": ok(
            provider_record(title="Broken story", link="https://example.com/broken"),
            provider_record(),
        )}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        report = await pipeline.run_pass()

        category = report.categories[0]
        assert category.articles_new == 1
        assert category.skipped_for(SkipReason.STORAGE_WRITE_FAILURE)[0].title == "Broken story"
        summary = await SummaryRepository(store).get()
        assert summary["categories"]["business"]["articleCount"] == 1

    @pytest.mark.asyncio
    async def test_failed_lookup_skips_only_that_article(self, settings, make_client, pass_sleep):
        store = FlakyLookup()
        client = make_client(by_category({"business": ok(
            provider_record(title="Storm hits coast", link="https://example.com/storm"),
            provider_record(),
        )}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        report = await pipeline.run_pass()

        category = report.categories[0]
        assert category.error is None
        assert category.articles_new == 1
        failed = category.skipped_for(SkipReason.ARTICLE_ERROR)
        assert [s.title for s in failed] == ["Storm hits coast"]
        assert "lookup timed out" in failed[0].detail

        stored = await store.query(category_collection("business"))
        assert [d["title"] for d in stored] == ["Markets rally as inflation cools"]

    @pytest.mark.asyncio
    async def test_cancellation_keeps_summary_in_step(self, settings, make_client, pass_sleep):
        store = CancelledAfterFirstWrite()
        client = make_client(by_category({"business": ok(
            provider_record(),
            provider_record(title="Storm hits coast", link="https://example.com/storm"),
            provider_record(title="Cup final tonight", link="https://example.com/cup"),
        )}))
        pipeline = IngestionPipeline(store, client, settings, sleep=pass_sleep)

        with pytest.raises(asyncio.CancelledError):
            await pipeline.run_pass()

        stored = await store.query(category_collection("business"))
        assert len(stored) == 1
        summary = await SummaryRepository(store).get()
        assert summary["categories"]["business"]["articleCount"] == len(stored)


class TestRunPass:
    """Tests for pass-level ordering and failure handling."""

    @pytest.mark.asyncio
    async def test_delay_between_categories(self, store, settings, make_client, pass_sleep):
        client = make_client(lambda request: httpx.Response(200, json=success_payload([])))
        pipeline = IngestionPipeline(
            store, client, settings, categories=["business", "world", "sports"], sleep=pass_sleep
        )

        report = await pipeline.run_pass()

        assert pass_sleep.calls == [30, 30]
        assert [c.category for c in report.categories] == ["business", "world", "sports"]
        assert [r.url.params["category"] for r in client.requests] == ["business", "world", "sports"]
        assert report.requests_made == 3

    @pytest.mark.asyncio
    async def test_rate_limit_defers_remaining_categories(self, store, settings, make_client, pass_sleep):
        client = make_client(by_category({
            "business": ok(provider_record()),
            "world": status(429),
            "sports": ok(provider_record(title="Cup final tonight", link="https://example.com/cup")),
        }))
        pipeline = IngestionPipeline(
            store, client, settings, categories=["business", "world", "sports"], sleep=pass_sleep
        )

        report = await pipeline.run_pass()

        assert report.aborted
        assert report.deferred == ["sports"]
        assert [c.category for c in report.categories] == ["business", "world"]
        assert "sports" not in [r.url.params["category"] for r in client.requests]
        assert report.articles_new == 1
        assert await store.query(category_collection("sports")) == []

    @pytest.mark.asyncio
    async def test_forbidden_category_does_not_stop_pass(self, store, settings, make_client, pass_sleep):
        client = make_client(by_category({
            "business": status(403),
            "world": ok(provider_record()),
        }))
        pipeline = IngestionPipeline(store, client, settings, categories=["business", "world"], sleep=pass_sleep)

        report = await pipeline.run_pass()

        assert not report.aborted
        assert report.categories[0].error.startswith("AccessForbidden")
        assert report.categories[1].articles_new == 1
        assert report.successful_categories == 1

    @pytest.mark.asyncio
    async def test_transient_error_does_not_stop_pass(self, store, settings, make_client, pass_sleep):
        client = make_client(by_category({
            "business": status(502),
            "world": ok(provider_record()),
        }))
        pipeline = IngestionPipeline(store, client, settings, categories=["business", "world"], sleep=pass_sleep)

        report = await pipeline.run_pass()

        assert report.categories[0].error.startswith("TransientFetchError")
        assert report.articles_new == 1

    @pytest.mark.asyncio
    async def test_summary_created_and_counted(self, store, settings, make_client, pass_sleep):
        client = make_client(by_category({
            "business": ok(provider_record()),
            "world": ok(),
        }))
        pipeline = IngestionPipeline(store, client, settings, categories=["business", "world"], sleep=pass_sleep)

        await pipeline.run_pass()

        summary = await SummaryRepository(store).get()
        assert summary["totalCategories"] == 2
        assert summary["categories"]["business"]["articleCount"] == 1
        assert summary["categories"]["world"]["articleCount"] == 0
        assert summary["searchCollections"] == {}
        assert summary["rateLimit"]["requestCount"] == 2
        assert summary["rateLimit"]["maxPerHour"] == 200
