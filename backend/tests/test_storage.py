"""
Tests for the document store backends and the aggregate summary.

Shared semantics run against both the in-memory store and the SQLAlchemy
store (SQLite file in a temp directory).
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from newsdesk.models.domain import RateLimitState, SearchCollectionEntry
from newsdesk.storage import MemoryDocumentStore, Query, SQLDocumentStore, SummaryRepository
from newsdesk.storage.base import apply_updates, sort_documents


@pytest_asyncio.fixture(params=["memory", "sql"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        store = MemoryDocumentStore()
    else:
        store = await SQLDocumentStore.connect(f"sqlite+aiosqlite:///{tmp_path / 'newsdesk.db'}")
    yield store
    await store.close()


def article(doc_id: str, title: str, keywords=(), **extra) -> dict:
    return {"id": doc_id, "title": title, "keywords": list(keywords), "fingerprint": f"fp-{doc_id}", **extra}


class TestHelpers:
    """Tests for the backend-independent helpers."""

    def test_apply_updates_creates_nested_maps(self):
        doc = apply_updates({}, {"categories.business.name": "business"}, {"categories.business.articleCount": 3})
        assert doc == {"categories": {"business": {"name": "business", "articleCount": 3}}}

    def test_apply_updates_increments_existing(self):
        doc = {"a": {"n": 2}}
        apply_updates(doc, increments={"a.n": -1})
        assert doc["a"]["n"] == 1

    def test_sort_missing_last(self):
        docs = [{"id": "a"}, {"id": "b", "score": 1}, {"id": "c", "score": 5}]
        ordered = sort_documents(docs, [("score", True)])
        assert [d["id"] for d in ordered] == ["c", "b", "a"]

    def test_query_builder_is_immutable(self):
        base = Query()
        narrowed = base.where("title", "==", "x").take(3)
        assert base.filters == ()
        assert base.limit is None
        assert len(narrowed.filters) == 1
        assert narrowed.limit == 3


class TestDocumentStore:
    """Semantics every backend must share."""

    @pytest.mark.asyncio
    async def test_set_get_overwrite(self, any_store):
        await any_store.set("news_business", "a", article("a", "First", ["one"]))
        await any_store.set("news_business", "a", article("a", "Second", ["two"]))

        doc = await any_store.get("news_business", "a")
        assert doc["title"] == "Second"
        assert await any_store.get("news_business", "missing") is None
        assert await any_store.get("news_world", "a") is None

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, any_store):
        await any_store.set("news_business", "a", article("a", "First"))

        doc = await any_store.get("news_business", "a")
        doc["title"] = "Changed"

        assert (await any_store.get("news_business", "a"))["title"] == "First"

    @pytest.mark.asyncio
    async def test_equality_filter_and_limit(self, any_store):
        for i in range(3):
            await any_store.set("news_business", f"d{i}", article(f"d{i}", "Same title"))

        docs = await any_store.query("news_business", Query().where("fingerprint", "==", "fp-d1"))
        assert [d["id"] for d in docs] == ["d1"]

        limited = await any_store.query("news_business", Query().where("title", "==", "Same title").take(2))
        assert [d["id"] for d in limited] == ["d0", "d1"]

    @pytest.mark.asyncio
    async def test_prefix_range(self, any_store):
        await any_store.set("news_business", "a", article("a", "Climate summit"))
        await any_store.set("news_business", "b", article("b", "Climate"))
        await any_store.set("news_business", "c", article("c", "climate lowercase"))
        await any_store.set("news_business", "d", article("d", "Markets"))

        docs = await any_store.query("news_business", Query().where_prefix("title", "Climate"))

        assert sorted(d["id"] for d in docs) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_array_contains(self, any_store):
        await any_store.set("news_business", "a", article("a", "A", ["climate", "summit"]))
        await any_store.set("news_business", "b", article("b", "B", ["markets"]))
        await any_store.set("news_business", "c", article("c", "C", ["climate", "climate"]))

        docs = await any_store.query("news_business", Query().where("keywords", "array-contains", "climate"))

        assert sorted(d["id"] for d in docs) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_keywords_follow_overwrite(self, any_store):
        await any_store.set("news_business", "a", article("a", "A", ["climate", "summit"]))
        await any_store.set("news_business", "a", article("a", "A", ["summit", "delhi"]))

        climate = await any_store.query("news_business", Query().where("keywords", "array-contains", "climate"))
        delhi = await any_store.query("news_business", Query().where("keywords", "array-contains", "delhi"))

        assert climate == []
        assert [d["id"] for d in delhi] == ["a"]

    @pytest.mark.asyncio
    async def test_ordering_on_document_fields(self, any_store):
        await any_store.set("search_x", "a", article("a", "A", relevanceScore=5, createdAt="2024-05-01"))
        await any_store.set("search_x", "b", article("b", "B", relevanceScore=9, createdAt="2024-05-01"))
        await any_store.set("search_x", "c", article("c", "C", relevanceScore=5, createdAt="2024-05-03"))

        docs = await any_store.query(
            "search_x",
            Query().order("relevanceScore", descending=True).order("createdAt", descending=True),
        )

        assert [d["id"] for d in docs] == ["b", "c", "a"]

    @pytest.mark.asyncio
    async def test_delete_many(self, any_store):
        for doc_id in ("a", "b", "c"):
            await any_store.set("news_business", doc_id, article(doc_id, doc_id.upper(), ["kw"]))

        deleted = await any_store.delete_many("news_business", ["a", "c", "missing"])

        assert deleted == 2
        remaining = await any_store.query("news_business")
        assert [d["id"] for d in remaining] == ["b"]
        by_keyword = await any_store.query("news_business", Query().where("keywords", "array-contains", "kw"))
        assert [d["id"] for d in by_keyword] == ["b"]
        assert await any_store.delete_many("news_business", []) == 0

    @pytest.mark.asyncio
    async def test_update_creates_and_increments(self, any_store):
        first = await any_store.update("super_collections", "news_collections", {"name": "x"}, {"count": 2})
        second = await any_store.update("super_collections", "news_collections", increments={"count": 3})

        assert first == {"name": "x", "count": 2}
        assert second == {"name": "x", "count": 5}
        assert await any_store.get("super_collections", "news_collections") == second


class TestSummaryRepository:
    """Tests for the aggregate summary document."""

    @pytest.fixture
    def rate_limit(self) -> RateLimitState:
        return RateLimitState(
            request_count=4,
            window_start_time=datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc),
            max_per_hour=200,
        )

    @pytest.mark.asyncio
    async def test_ensure_creates_entries(self, any_store, rate_limit):
        summary = SummaryRepository(any_store)

        data = await summary.ensure(["business", "world"], rate_limit)

        assert data["totalCategories"] == 2
        assert data["categories"]["business"]["articleCount"] == 0
        assert data["categories"]["world"]["name"] == "world"
        assert data["searchCollections"] == {}
        assert data["rateLimit"] == {
            "requestCount": 4,
            "windowStartTime": rate_limit.to_document()["windowStartTime"],
            "maxPerHour": 200,
        }

    @pytest.mark.asyncio
    async def test_ensure_keeps_existing_counts(self, any_store, rate_limit):
        summary = SummaryRepository(any_store)
        await summary.ensure(["business"], rate_limit)
        await summary.record_ingestion("business", 5, rate_limit)
        await summary.record_search(SearchCollectionEntry(
            keyword="climate", result_count=2, collection_name="search_climate"
        ))

        data = await summary.ensure(["business", "world"], rate_limit)

        assert data["categories"]["business"]["articleCount"] == 5
        assert data["categories"]["world"]["articleCount"] == 0
        assert "search_climate" in data["searchCollections"]

    @pytest.mark.asyncio
    async def test_ingestion_and_removal_counts(self, any_store, rate_limit):
        summary = SummaryRepository(any_store)
        await summary.ensure(["business"], rate_limit)

        await summary.record_ingestion("business", 3)
        await summary.record_ingestion("business", 2)
        data = await summary.record_removal("business", 4)

        assert data["categories"]["business"]["articleCount"] == 1

    @pytest.mark.asyncio
    async def test_stats(self, any_store, rate_limit):
        summary = SummaryRepository(any_store)
        assert await summary.stats() is None

        await summary.ensure(["business", "world"], rate_limit)
        await summary.record_ingestion("business", 3)
        await summary.record_ingestion("world", 4)
        await summary.record_search(SearchCollectionEntry(
            keyword="climate", result_count=2, collection_name="search_climate"
        ))

        stats = await summary.stats()

        assert stats["totalArticles"] == 7
        assert stats["categoriesCount"] == 2
        assert stats["searchCollectionsCount"] == 1
        assert stats["rateLimit"]["maxPerHour"] == 200
        assert [(c["name"], c["count"]) for c in stats["categoryBreakdown"]] == [
            ("business", 3),
            ("world", 4),
        ]
