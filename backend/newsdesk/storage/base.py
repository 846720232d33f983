"""
Document store interface.

The pipeline only needs a small slice of a document database: overwrite by
id, point reads, filtered queries (equality, range, array membership),
batched deletes and dotted-path updates on a single document. Backends
implement ``DocumentStore``; the helpers below hold the filter and update
semantics so every backend agrees on them.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Optional

# Upper bound used to turn a prefix match into a range query.
PREFIX_SENTINEL = "\uf8ff"

_MISSING = object()


class FilterOp(str, Enum):
    EQ = "=="
    GTE = ">="
    LTE = "<="
    ARRAY_CONTAINS = "array-contains"


@dataclass(frozen=True)
class Filter:
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class Query:
    """Immutable query description; builder methods return new instances."""
    filters: tuple[Filter, ...] = ()
    order_by: tuple[tuple[str, bool], ...] = ()  # (field, descending)
    limit: Optional[int] = None

    def where(self, field_name: str, op: FilterOp | str, value: Any) -> "Query":
        return replace(self, filters=self.filters + (Filter(field_name, FilterOp(op), value),))

    def where_prefix(self, field_name: str, prefix: str) -> "Query":
        return (
            self.where(field_name, FilterOp.GTE, prefix)
            .where(field_name, FilterOp.LTE, prefix + PREFIX_SENTINEL)
        )

    def order(self, field_name: str, descending: bool = False) -> "Query":
        return replace(self, order_by=self.order_by + ((field_name, descending),))

    def take(self, limit: int) -> "Query":
        return replace(self, limit=limit)


def get_path(doc: dict, path: str, default: Any = None) -> Any:
    """Read a dotted path from a nested dict."""
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def _parent_for(doc: dict, path: str) -> tuple[dict, str]:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    return current, parts[-1]


def apply_updates(
    doc: dict,
    changes: Optional[dict[str, Any]] = None,
    increments: Optional[dict[str, float]] = None,
) -> dict:
    """
    Apply dotted-path assignments and numeric increments to ``doc`` in place.

    Missing intermediate maps are created; a missing numeric field counts
    as zero before incrementing.
    """
    for path, value in (changes or {}).items():
        parent, key = _parent_for(doc, path)
        parent[key] = value

    for path, delta in (increments or {}).items():
        parent, key = _parent_for(doc, path)
        current = parent.get(key) or 0
        parent[key] = current + delta

    return doc


def matches(doc: dict, flt: Filter) -> bool:
    """Evaluate a single filter against a document."""
    value = get_path(doc, flt.field, _MISSING)
    if value is _MISSING or value is None:
        return False

    if flt.op is FilterOp.ARRAY_CONTAINS:
        return isinstance(value, list) and flt.value in value

    try:
        if flt.op is FilterOp.EQ:
            return value == flt.value
        if flt.op is FilterOp.GTE:
            return value >= flt.value
        if flt.op is FilterOp.LTE:
            return value <= flt.value
    except TypeError:
        # Mismatched types never satisfy a range filter
        return False
    return False


def sort_documents(docs: list[dict], order_by: Iterable[tuple[str, bool]]) -> list[dict]:
    """Stable multi-key sort; documents missing a key sort last."""
    result = list(docs)
    for field_name, descending in reversed(list(order_by)):
        present = [d for d in result if get_path(d, field_name) is not None]
        absent = [d for d in result if get_path(d, field_name) is None]
        present.sort(key=lambda d: get_path(d, field_name), reverse=descending)
        result = present + absent
    return result


class DocumentStore(ABC):
    """Abstract document store keyed by collection name and document id."""

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or overwrite a document."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Point read; None when absent."""

    @abstractmethod
    async def query(self, collection: str, query: Optional[Query] = None) -> list[dict[str, Any]]:
        """Return documents matching every filter of ``query``."""

    @abstractmethod
    async def delete_many(self, collection: str, doc_ids: Iterable[str]) -> int:
        """Delete documents in one batch, returning how many existed."""

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: Optional[dict[str, Any]] = None,
        increments: Optional[dict[str, float]] = None,
    ) -> dict[str, Any]:
        """
        Apply dotted-path changes and increments to one document.

        The document is created when missing. Returns the updated document.
        """

    async def close(self) -> None:
        """Release backend resources."""
        return None
