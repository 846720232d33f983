"""
NewsData.io client for category news.
API docs: https://newsdata.io/documentation
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from newsdesk.config import Settings, get_settings
from newsdesk.errors import (
    AccessForbidden,
    NewsdeskError,
    RateLimitExceeded,
    TransientFetchError,
)
from newsdesk.services.data_ingestion.base import FetchResult, RawArticle
from newsdesk.services.data_ingestion.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)

REMAINING_QUOTA_HEADER = "x_rate_limit_remaining"


class NewsDataClient:
    """
    Fetches the latest articles for one category at a time.

    Every attempt passes through the shared RateLimiter. Upstream throttling
    (HTTP 429) is retried with capped exponential backoff; a 403 fails at
    once; anything else is reported as transient and left to the caller.
    """

    USER_AGENT = "NewsFetcher/1.0"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.settings = settings or get_settings()
        self.rate_limiter = rate_limiter or RateLimiter(
            ceiling=self.settings.hourly_request_ceiling,
            reserve=self.settings.rate_limit_reserve,
        )
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep or asyncio.sleep

    @property
    def name(self) -> str:
        return "NewsData"

    def _has_api_key(self) -> bool:
        return bool(self.settings.newsdata_api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.request_timeout_seconds,
                headers={"User-Agent": self.USER_AGENT, "Accept": "application/json"},
            )
        return self._client

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "NewsDataClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, params: dict[str, Any]) -> tuple[dict, Optional[str]]:
        """One rate-limited HTTP round trip, mapped onto the error taxonomy."""
        await self.rate_limiter.acquire()

        logger.debug(
            "Making API request",
            request=self.rate_limiter.request_count + 1,
            ceiling=self.rate_limiter.ceiling,
            category=params.get("category"),
        )
        try:
            response = await self._get_client().get(
                self.settings.newsdata_base_url,
                params={"apikey": self.settings.newsdata_api_key, **params},
                timeout=self.settings.request_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise TransientFetchError(f"Request timed out: {e!r}") from e
        except httpx.HTTPError as e:
            raise TransientFetchError(f"Transport error: {e!r}") from e

        remaining = response.headers.get(REMAINING_QUOTA_HEADER)

        if response.status_code == 429:
            raise RateLimitExceeded("Upstream rate limit hit", remaining=remaining)
        if response.status_code == 403:
            raise AccessForbidden("API access forbidden - check the API key and plan limits")
        if response.is_error:
            raise TransientFetchError(f"Upstream returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise TransientFetchError("Upstream returned invalid JSON") from e

        if not isinstance(data, dict) or data.get("status", "success") != "success":
            message = data.get("results") if isinstance(data, dict) else data
            raise TransientFetchError(f"NewsData error: {message}")

        await self.rate_limiter.record_request()
        return data, remaining

    def _log_backoff(self, retry_state: RetryCallState):
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Rate limit hit, backing off",
            attempt=retry_state.attempt_number,
            max_retries=self.settings.max_retries,
            wait_seconds=delay,
        )

    async def _request_with_backoff(self, params: dict[str, Any]) -> tuple[dict, Optional[str]]:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RateLimitExceeded),
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.settings.backoff_base_seconds,
                exp_base=2,
                max=self.settings.backoff_cap_seconds,
            ),
            sleep=self._sleep,
            before_sleep=self._log_backoff,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._request(params)

    async def fetch(self, category: str, **params: Any) -> FetchResult:
        """
        Fetch the latest articles for ``category``.

        Extra keyword arguments override the default query parameters
        (language, country); a None value drops the parameter.

        Returns:
            FetchResult carrying either the parsed batch or the error
        """
        if not self._has_api_key():
            return FetchResult.failed(category, AccessForbidden("NewsData API key not configured"))

        query = {
            "category": category,
            "language": self.settings.language,
            "country": self.settings.country,
        }
        query.update(params)
        query = {k: v for k, v in query.items() if v is not None}

        try:
            data, remaining = await self._request_with_backoff(query)
        except RateLimitExceeded as e:
            logger.error("Max retries reached for rate limit", category=category)
            return FetchResult.failed(
                category,
                RateLimitExceeded("Rate limit exceeded - max retries reached", remaining=e.remaining),
            )
        except NewsdeskError as e:
            logger.error("Fetch failed", category=category, error=str(e), kind=type(e).__name__)
            return FetchResult.failed(category, e)

        records = data.get("results") or []
        articles = [RawArticle.from_provider(r) for r in records if isinstance(r, dict)]
        logger.info(
            "API request successful",
            category=category,
            articles=len(articles),
            remaining=remaining or "unknown",
        )
        return FetchResult.ok(category, articles, remaining)

    async def health_check(self) -> bool:
        """Check that the API answers for a known category."""
        result = await self.fetch("world", country=None)
        return result.error is None
