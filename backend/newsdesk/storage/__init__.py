"""
Storage gateway for Newsdesk.

- base: DocumentStore interface, query description, filter/update semantics
- memory: in-process store
- sql: SQLAlchemy store (SQLite via aiosqlite by default)
- summary: the aggregate summary document
"""

from newsdesk.storage.base import DocumentStore, Filter, FilterOp, Query
from newsdesk.storage.memory import MemoryDocumentStore
from newsdesk.storage.sql import SQLDocumentStore
from newsdesk.storage.summary import SummaryRepository

__all__ = [
    "DocumentStore",
    "Filter",
    "FilterOp",
    "Query",
    "MemoryDocumentStore",
    "SQLDocumentStore",
    "SummaryRepository",
]
