"""
Data Ingestion Services for Newsdesk.

This module provides the category ingestion pipeline:
- NewsData.io client with retry/backoff
- Hourly rate limiting
- Fingerprint and near-duplicate deduplication
- Keyword extraction
- Pass orchestration and scheduling
"""

from newsdesk.services.data_ingestion.base import (
    CategoryReport,
    FetchResult,
    FetchStatus,
    PassReport,
    RawArticle,
    SkipEvent,
    SkipReason,
)
from newsdesk.services.data_ingestion.deduplicator import Deduplicator
from newsdesk.services.data_ingestion.fingerprint import fingerprint
from newsdesk.services.data_ingestion.keywords import extract_keywords
from newsdesk.services.data_ingestion.newsdata import NewsDataClient
from newsdesk.services.data_ingestion.pipeline import IngestionPipeline
from newsdesk.services.data_ingestion.rate_limiter import RateLimiter
from newsdesk.services.data_ingestion.scheduler import IngestionScheduler
from newsdesk.services.data_ingestion.similarity import title_similarity

__all__ = [
    "CategoryReport",
    "FetchResult",
    "FetchStatus",
    "PassReport",
    "RawArticle",
    "SkipEvent",
    "SkipReason",
    "Deduplicator",
    "fingerprint",
    "extract_keywords",
    "NewsDataClient",
    "IngestionPipeline",
    "RateLimiter",
    "IngestionScheduler",
    "title_similarity",
]
