"""
Base data models for data ingestion.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from newsdesk.errors import (
    AccessForbidden,
    NewsdeskError,
    RateLimitExceeded,
)


def _text(value: Any) -> Optional[str]:
    """Provider strings, with blanks collapsed to None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass
class RawArticle:
    """
    Article record as returned by the upstream provider.

    This is the intermediate format between the provider payload and the
    stored Article model.
    """
    title: Optional[str]
    link: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    image_url: Optional[str] = None
    pub_date: Optional[str] = None
    source_id: Optional[str] = None

    @classmethod
    def from_provider(cls, record: dict[str, Any]) -> "RawArticle":
        return cls(
            title=_text(record.get("title")),
            link=_text(record.get("link")),
            description=_text(record.get("description")),
            content=_text(record.get("content")),
            image_url=_text(record.get("image_url")),
            pub_date=_text(record.get("pubDate")),
            source_id=_text(record.get("source_id")),
        )

    @property
    def body(self) -> str:
        """Content, falling back to the description."""
        return self.content or self.description or ""


class FetchStatus(str, Enum):
    """How the orchestrator should treat a fetch outcome."""
    OK = "ok"
    RETRYABLE = "retryable"  # skip this category, try again next pass
    FATAL = "fatal"          # stop the pass (throttled) or this category (forbidden)


@dataclass
class FetchResult:
    """Outcome of a single category fetch."""
    category: str
    status: FetchStatus
    articles: list[RawArticle] = field(default_factory=list)
    error: Optional[NewsdeskError] = None
    remaining_quota: Optional[str] = None

    @classmethod
    def ok(cls, category: str, articles: list[RawArticle], remaining: Optional[str] = None) -> "FetchResult":
        return cls(category, FetchStatus.OK, articles, remaining_quota=remaining)

    @classmethod
    def failed(cls, category: str, error: NewsdeskError) -> "FetchResult":
        fatal = isinstance(error, (RateLimitExceeded, AccessForbidden))
        status = FetchStatus.FATAL if fatal else FetchStatus.RETRYABLE
        return cls(category, status, error=error)

    @property
    def aborts_pass(self) -> bool:
        return isinstance(self.error, RateLimitExceeded)


class SkipReason(str, Enum):
    """Why a candidate article was not stored."""
    DUPLICATE_FINGERPRINT = "duplicate_fingerprint"
    MALFORMED_ARTICLE = "malformed_article"
    STORAGE_WRITE_FAILURE = "storage_write_failure"
    ARTICLE_ERROR = "article_error"


@dataclass
class SkipEvent:
    """A candidate that was filtered out or failed to store."""
    category: str
    reason: SkipReason
    title: Optional[str] = None
    fingerprint: Optional[str] = None
    detail: str = ""


@dataclass
class CategoryReport:
    """Result of ingesting one category."""
    category: str
    articles_fetched: int = 0
    articles_new: int = 0
    skipped: list[SkipEvent] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def skipped_for(self, reason: SkipReason) -> list[SkipEvent]:
        return [s for s in self.skipped if s.reason is reason]

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return (
            f"{status} {self.category}: "
            f"fetched={self.articles_fetched}, new={self.articles_new}, "
            f"skipped={len(self.skipped)}, "
            f"error={self.error or '-'}, time={self.duration_seconds:.1f}s"
        )


@dataclass
class PassReport:
    """Result of one full pass over every category."""
    categories: list[CategoryReport] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    aborted: bool = False
    requests_made: int = 0
    duration_seconds: float = 0.0

    @property
    def articles_new(self) -> int:
        return sum(c.articles_new for c in self.categories)

    @property
    def successful_categories(self) -> int:
        return sum(1 for c in self.categories if c.success)

    @property
    def skipped(self) -> list[SkipEvent]:
        return [s for c in self.categories for s in c.skipped]
