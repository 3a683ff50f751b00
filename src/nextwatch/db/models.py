"""
SQLAlchemy Models

Defines the database schema for:
- Catalog items (metadata, unique per external id)
- Item embeddings (vector storage with pgvector)
"""

from __future__ import annotations

from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    Float,
    DateTime,
    Date,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Catalog Item Model
# ---------------------------------------------------------------------

class CatalogItem(Base):
    """
    One catalog entry. `external_id` is the metadata source's identifier and
    is unique; a violation on insert means the item already exists.
    """
    __tablename__ = "catalog_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    overview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    release_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    genres: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    popularity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    poster_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    trailer_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("idx_catalog_item_title", "title"),
        Index("idx_catalog_item_rating", "rating"),
    )


# ---------------------------------------------------------------------
# Item Embedding Model
# ---------------------------------------------------------------------

class ItemEmbedding(Base):
    """
    Vector embedding for one catalog item, with a metadata mirror of the
    item's identifiers.
    """
    __tablename__ = "item_embedding"

    item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("catalog_item.id", ondelete="CASCADE"),
        primary_key=True,
    )
    external_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    embedded_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    embedding = Column(Vector(settings.embedding_dimensions), nullable=False)
