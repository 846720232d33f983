"""Shared pytest fixtures for the newsdesk test suite."""

from typing import Any, Callable, Optional

import httpx
import pytest

from newsdesk.config import Settings
from newsdesk.services.data_ingestion import NewsDataClient, RateLimiter
from newsdesk.storage import MemoryDocumentStore


class RecordingSleep:
    """Async stand-in for ``asyncio.sleep`` that only records delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def provider_record(
    title: Optional[str] = "Markets rally as inflation cools",
    link: Optional[str] = "https://example.com/markets-rally",
    pub_date: Optional[str] = "2024-05-01 08:00:00",
    image_url: Optional[str] = "https://example.com/img/markets.jpg",
    **extra: Any,
) -> dict[str, Any]:
    """One article in the upstream wire shape."""
    record = {
        "title": title,
        "link": link,
        "pubDate": pub_date,
        "image_url": image_url,
        "description": "Stocks climbed on Tuesday.",
        "content": "Stocks climbed on Tuesday after inflation data came in below forecasts.",
        "source_id": "example_news",
    }
    record.update(extra)
    return record


def success_payload(records: list[dict[str, Any]]) -> dict[str, Any]:
    return {"status": "success", "totalResults": len(records), "results": records}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        newsdata_api_key="test-key",
        newsdata_base_url="https://newsdata.test/api/1/latest",
        categories=["business"],
        inter_request_delay_seconds=30,
        max_retries=3,
        backoff_base_seconds=60,
        backoff_cap_seconds=300,
    )


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def client_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def pass_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client(settings: Settings, client_sleep: RecordingSleep):
    """
    Build a NewsDataClient served by an in-process handler.

    The handler receives the ``httpx.Request`` and returns an
    ``httpx.Response`` (or raises an ``httpx`` transport error).
    Requests seen by the transport are collected on ``client.requests``.
    """
    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        client_settings: Optional[Settings] = None,
    ) -> NewsDataClient:
        seen: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        client = NewsDataClient(
            client_settings or settings,
            rate_limiter=RateLimiter(ceiling=200, reserve=10, sleep=client_sleep),
            http_client=http_client,
            sleep=client_sleep,
        )
        client.requests = seen
        return client

    return factory
