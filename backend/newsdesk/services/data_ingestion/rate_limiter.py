"""
Rate limiting for upstream API requests.

Tracks the request budget over a rolling hour window and pauses callers
before the provider's hourly ceiling is reached.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from newsdesk.models.domain import RateLimitState

logger = structlog.get_logger(__name__)


class LimiterState(str, Enum):
    OPEN = "open"
    PAUSED = "paused"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """
    Hourly request budget with a safety reserve.

    - The window restarts once more than ``window`` has elapsed since it began
    - When ``request_count`` reaches ``ceiling - reserve`` the next caller
      sleeps out the rest of the window, then the window restarts
    - Only successful requests are counted (``record_request``)

    State lives on the instance so tests and future workers can each own one.
    The clock and sleep function are injectable.
    """

    WINDOW = timedelta(hours=1)

    def __init__(
        self,
        ceiling: int = 200,
        reserve: int = 10,
        window: timedelta = WINDOW,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if reserve >= ceiling:
            raise ValueError("reserve must be smaller than ceiling")

        self.ceiling = ceiling
        self.reserve = reserve
        self.window = window
        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()

        self.request_count = 0
        self.window_start = self._clock()
        self.state = LimiterState.OPEN

    @property
    def threshold(self) -> int:
        """Request count at which callers start pausing."""
        return self.ceiling - self.reserve

    def _reset(self, now: datetime):
        self.request_count = 0
        self.window_start = now
        self.state = LimiterState.OPEN

    async def acquire(self):
        """Wait until a request may be sent."""
        async with self._lock:
            now = self._clock()
            if now - self.window_start > self.window:
                self._reset(now)
                logger.info("Hourly request count reset")

            if self.request_count >= self.threshold:
                wait_seconds = (self.window_start + self.window - now).total_seconds()
                logger.warning(
                    "Approaching rate limit, pausing",
                    request_count=self.request_count,
                    ceiling=self.ceiling,
                    wait_seconds=round(max(wait_seconds, 0.0), 1),
                )
                self.state = LimiterState.PAUSED
                try:
                    if wait_seconds > 0:
                        await self._sleep(wait_seconds)
                finally:
                    self.state = LimiterState.OPEN
                self._reset(self._clock())

    async def record_request(self):
        """Count one successful request against the window."""
        async with self._lock:
            self.request_count += 1

    def snapshot(self) -> RateLimitState:
        return RateLimitState(
            request_count=self.request_count,
            window_start_time=self.window_start,
            max_per_hour=self.ceiling,
        )

    def get_status(self) -> dict:
        """Current budget, for logs and the CLI."""
        return {
            "state": self.state.value,
            "request_count": self.request_count,
            "ceiling": self.ceiling,
            "threshold": self.threshold,
            "window_start": self.window_start.isoformat(),
            "available": max(self.threshold - self.request_count, 0),
        }
