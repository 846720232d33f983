"""
Newsdesk - category-partitioned news ingestion with deduplication.
"""

__version__ = "0.1.0"
