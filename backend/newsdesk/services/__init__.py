"""
Services for Newsdesk.

- data_ingestion: upstream fetching, rate limiting, deduplication, scheduling
- search: keyword-indexed search collections
- maintenance: out-of-band purges over category collections
"""
