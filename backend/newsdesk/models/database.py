"""
SQLAlchemy database models for Newsdesk.
Uses SQLAlchemy 2.0 async patterns.

Documents are stored as JSON blobs in a single table partitioned by
collection name. Fields the pipeline filters on are promoted to indexed
columns; array membership on ``keywords`` goes through a side table.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Documents
# =============================================================================

class DBDocument(Base):
    """One document of one collection."""
    __tablename__ = "documents"

    # Surrogate key keeps insertion order stable for unordered queries
    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(255), nullable=False)
    doc_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Promoted fields
    title: Mapped[Optional[str]] = mapped_column(Text)
    fingerprint: Mapped[Optional[str]] = mapped_column(String(64))

    data: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    keywords: Mapped[list["DBDocumentKeyword"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc"),
        Index("ix_documents_collection_fingerprint", "collection", "fingerprint"),
        Index("ix_documents_collection_title", "collection", "title"),
    )


class DBDocumentKeyword(Base):
    """Keyword membership row, one per (document, keyword)."""
    __tablename__ = "document_keywords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_pk: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.pk", ondelete="CASCADE"), nullable=False
    )
    keyword: Mapped[str] = mapped_column(String(255), nullable=False)

    document: Mapped[DBDocument] = relationship(back_populates="keywords")

    __table_args__ = (
        Index("ix_document_keywords_keyword", "keyword"),
        Index("ix_document_keywords_pair", "document_pk", "keyword", unique=True),
    )


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(
            database_url,
            echo=False,  # Set to True for SQL logging
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()
