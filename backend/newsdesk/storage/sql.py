"""
SQLAlchemy-backed document store.

Runs on any async SQLAlchemy dialect; SQLite via aiosqlite is the default.
Filters on promoted columns (``title``, ``fingerprint``) and keyword
membership are pushed down to SQL. Anything else is evaluated in Python
after the fetch, in which case the limit is applied in Python too.
"""
import copy
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from newsdesk.errors import StorageWriteFailure
from newsdesk.models.database import Database, DBDocument, DBDocumentKeyword
from newsdesk.storage.base import (
    DocumentStore,
    Filter,
    FilterOp,
    Query,
    apply_updates,
    matches,
    sort_documents,
)

logger = structlog.get_logger(__name__)

# SQLite caps bound parameters per statement
DELETE_CHUNK_SIZE = 500

_COLUMNS = {
    "title": DBDocument.title,
    "fingerprint": DBDocument.fingerprint,
}


def _keywords_of(data: dict[str, Any]) -> list[str]:
    keywords = data.get("keywords")
    if not isinstance(keywords, list):
        return []
    return list(dict.fromkeys(k for k in keywords if isinstance(k, str)))


def _promoted(data: dict[str, Any], field_name: str) -> Optional[str]:
    value = data.get(field_name)
    return value if isinstance(value, str) else None


def _column_clause(flt: Filter):
    column = _COLUMNS[flt.field]
    if flt.op is FilterOp.EQ:
        return column == flt.value
    if flt.op is FilterOp.GTE:
        return column >= flt.value
    return column <= flt.value


class SQLDocumentStore(DocumentStore):
    """Document store persisted through SQLAlchemy."""

    def __init__(self, database: Database):
        self.database = database

    @classmethod
    async def connect(cls, database_url: str) -> "SQLDocumentStore":
        """Create the engine and tables, returning a ready store."""
        database = Database(database_url)
        await database.create_tables()
        logger.info("Document store ready", url=database_url)
        return cls(database)

    async def close(self) -> None:
        await self.database.dispose()

    async def _load(self, session, collection: str, doc_id: str) -> Optional[DBDocument]:
        result = await session.execute(
            select(DBDocument).where(
                DBDocument.collection == collection,
                DBDocument.doc_id == doc_id,
            )
        )
        return result.scalar_one_or_none()

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            async with self.database.async_session() as session:
                async with session.begin():
                    row = await self._load(session, collection, doc_id)
                    if row is None:
                        row = DBDocument(collection=collection, doc_id=doc_id, keywords=[])
                        session.add(row)

                    row.data = copy.deepcopy(data)
                    row.title = _promoted(data, "title")
                    row.fingerprint = _promoted(data, "fingerprint")

                    # Reuse rows for keywords that survive the overwrite
                    wanted = _keywords_of(data)
                    row.keywords = [kw for kw in row.keywords if kw.keyword in wanted]
                    present = {kw.keyword for kw in row.keywords}
                    for keyword in wanted:
                        if keyword not in present:
                            row.keywords.append(DBDocumentKeyword(keyword=keyword))
        except SQLAlchemyError as e:
            raise StorageWriteFailure(str(e), collection, doc_id) from e

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        async with self.database.async_session() as session:
            row = await self._load(session, collection, doc_id)
            return copy.deepcopy(row.data) if row is not None else None

    async def query(self, collection: str, query: Optional[Query] = None) -> list[dict[str, Any]]:
        query = query or Query()
        stmt = select(DBDocument).where(DBDocument.collection == collection)

        residual: list[Filter] = []
        for flt in query.filters:
            if flt.op is FilterOp.ARRAY_CONTAINS and flt.field == "keywords":
                stmt = stmt.where(
                    DBDocument.keywords.any(DBDocumentKeyword.keyword == flt.value)
                )
            elif flt.op is not FilterOp.ARRAY_CONTAINS and flt.field in _COLUMNS:
                stmt = stmt.where(_column_clause(flt))
            else:
                residual.append(flt)

        order_in_sql = all(name in _COLUMNS for name, _ in query.order_by)
        if order_in_sql:
            for name, descending in query.order_by:
                column = _COLUMNS[name]
                stmt = stmt.order_by(column.desc() if descending else column.asc())
        stmt = stmt.order_by(DBDocument.pk)

        limit_in_sql = not residual and order_in_sql and query.limit is not None
        if limit_in_sql:
            stmt = stmt.limit(query.limit)

        async with self.database.async_session() as session:
            result = await session.execute(stmt)
            docs = [copy.deepcopy(row.data) for row in result.scalars().all()]

        if residual:
            docs = [d for d in docs if all(matches(d, f) for f in residual)]
        if not order_in_sql:
            docs = sort_documents(docs, query.order_by)
        if query.limit is not None and not limit_in_sql:
            docs = docs[:query.limit]
        return docs

    async def delete_many(self, collection: str, doc_ids: Iterable[str]) -> int:
        ids = list(dict.fromkeys(doc_ids))
        if not ids:
            return 0

        deleted = 0
        try:
            async with self.database.async_session() as session:
                async with session.begin():
                    for start in range(0, len(ids), DELETE_CHUNK_SIZE):
                        chunk = ids[start:start + DELETE_CHUNK_SIZE]
                        targets = select(DBDocument.pk).where(
                            DBDocument.collection == collection,
                            DBDocument.doc_id.in_(chunk),
                        )
                        await session.execute(
                            delete(DBDocumentKeyword).where(
                                DBDocumentKeyword.document_pk.in_(targets)
                            )
                        )
                        result = await session.execute(
                            delete(DBDocument).where(
                                DBDocument.collection == collection,
                                DBDocument.doc_id.in_(chunk),
                            )
                        )
                        deleted += result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageWriteFailure(str(e), collection, f"<batch of {len(ids)}>") from e

        return deleted

    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: Optional[dict[str, Any]] = None,
        increments: Optional[dict[str, float]] = None,
    ) -> dict[str, Any]:
        try:
            async with self.database.async_session() as session:
                async with session.begin():
                    row = await self._load(session, collection, doc_id)
                    if row is None:
                        row = DBDocument(collection=collection, doc_id=doc_id, data={}, keywords=[])
                        session.add(row)

                    data = copy.deepcopy(row.data or {})
                    apply_updates(data, copy.deepcopy(changes), increments)
                    row.data = data
                    row.title = _promoted(data, "title")
                    row.fingerprint = _promoted(data, "fingerprint")
                    return copy.deepcopy(data)
        except SQLAlchemyError as e:
            raise StorageWriteFailure(str(e), collection, doc_id) from e
