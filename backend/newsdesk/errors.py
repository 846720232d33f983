"""
Error taxonomy for the ingestion pipeline.

Scope of each error decides how far it travels:

- article level (``MalformedArticle``, ``StorageWriteFailure``): the article
  is skipped, the category continues
- category level (``AccessForbidden``, ``TransientFetchError``): the category
  is skipped, the pass continues
- pass level (``RateLimitExceeded``): the rest of the pass is deferred to
  the next scheduled run
"""
from typing import Optional


class NewsdeskError(Exception):
    """Base class for all pipeline errors."""


class RateLimitExceeded(NewsdeskError):
    """Upstream kept throttling after every retry was spent."""

    def __init__(self, message: str, remaining: Optional[str] = None):
        super().__init__(message)
        self.remaining = remaining


class AccessForbidden(NewsdeskError):
    """Upstream refused the API key or plan. Never retried."""


class TransientFetchError(NewsdeskError):
    """Network failure, timeout or unexpected upstream response."""


class MalformedArticle(NewsdeskError):
    """Candidate lacks a mandatory field (title or image)."""


class StorageWriteFailure(NewsdeskError):
    """A single document write failed."""

    def __init__(self, message: str, collection: str, doc_id: str):
        super().__init__(message)
        self.collection = collection
        self.doc_id = doc_id
