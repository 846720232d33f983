"""
Domain models for Newsdesk.
These are the core business entities, independent of storage representation.

Stored documents use camelCase field names (``imageUrl``, ``pubDate``,
``createdAt``); the models accept either spelling on input and emit camelCase
through ``to_document()``.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_pub_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a provider publish date; None when missing or unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DocumentModel(BaseModel):
    """Base for models persisted as documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Articles
# =============================================================================

class Article(DocumentModel):
    """An accepted article as stored in its category collection."""
    id: str  # title slug + millisecond timestamp
    title: str
    content: str = ""
    description: str = ""
    image_url: str
    link: Optional[str] = None
    pub_date: Optional[str] = None  # provider string, kept verbatim for fingerprinting
    source: str = "unknown"
    category: str

    keywords: list[str] = Field(default_factory=list, max_length=10)
    fingerprint: str
    created_at: datetime = Field(default_factory=utcnow)
    searchable: bool = True

    @property
    def published_at(self) -> Optional[datetime]:
        """Parsed ``pub_date``, or None when missing or unparseable."""
        return parse_pub_date(self.pub_date)


class SearchHit(Article):
    """An article copied into a search collection."""
    search_keyword: str
    search_created_at: datetime = Field(default_factory=utcnow)
    relevance_score: int = 0


# =============================================================================
# Rate limiting
# =============================================================================

class RateLimitState(DocumentModel):
    """Snapshot of the request budget for the current window."""
    request_count: int = 0
    window_start_time: datetime
    max_per_hour: int


# =============================================================================
# Aggregate summary
# =============================================================================

class CategorySummary(DocumentModel):
    """Per-category bookkeeping inside the aggregate summary."""
    name: str
    article_count: int = 0
    last_updated: datetime = Field(default_factory=utcnow)


class SearchCollectionEntry(DocumentModel):
    """Registry entry for a derived search collection."""
    keyword: str
    result_count: int
    created_at: datetime = Field(default_factory=utcnow)
    collection_name: str
