"""
Category set and storage namespace naming.

Every category gets its own collection (``news_<category>``). The aggregate
summary lives in a single document and every executed search gets a derived
collection named after its normalized keyword.
"""

import re
from enum import Enum


class Category(str, Enum):
    """Categories understood by the upstream news API."""
    BUSINESS = "business"
    CRIME = "crime"
    DOMESTIC = "domestic"
    EDUCATION = "education"
    ENTERTAINMENT = "entertainment"
    ENVIRONMENT = "environment"
    FOOD = "food"
    HEALTH = "health"
    LIFESTYLE = "lifestyle"
    OTHER = "other"
    POLITICS = "politics"
    SCIENCE = "science"
    SPORTS = "sports"
    TECHNOLOGY = "technology"
    TOP = "top"
    TOURISM = "tourism"
    WORLD = "world"


SUMMARY_COLLECTION = "super_collections"
SUMMARY_DOCUMENT = "news_collections"

_WHITESPACE = re.compile(r"\s+")


def all_categories() -> list[str]:
    """All known category names, used by maintenance sweeps."""
    return [c.value for c in Category]


def category_collection(category: str) -> str:
    """Collection holding the articles of one category."""
    return f"news_{category.lower()}"


def normalize_keyword(keyword: str) -> str:
    """Lower-case and trim a search keyword."""
    return keyword.lower().strip()


def search_collection(keyword: str) -> str:
    """Collection holding the results for a search keyword."""
    return "search_" + _WHITESPACE.sub("_", normalize_keyword(keyword))
