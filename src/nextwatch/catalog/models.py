"""
Catalog Data Models

This module defines the canonical shapes an item takes on its way through the
system:

- ItemStub       : a search / pagination hit from the metadata source
- ItemDetail     : full metadata for one item, as fetched
- CatalogRecord  : the durable representation stored in the catalog
- WriteResult    : outcome of a single catalog write

Genres travel as an ordered, de-duplicated tuple from ingestion onward. The
storage layer keeps them as a delimited string; conversion happens exactly once
in `parse_genres`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


GENRE_DELIMITER = ", "
YOUTUBE_EMBED_BASE = "https://youtube.com/embed/"


def parse_genres(value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """
    Normalize a delimited genre string or an iterable of names.

    Blank entries are dropped and duplicates removed, preserving first-seen
    order.
    """
    if value is None:
        return ()

    parts = value.split(",") if isinstance(value, str) else value

    seen = []
    for part in parts:
        name = str(part).strip()
        if name and name not in seen:
            seen.append(name)
    return tuple(seen)


def join_genres(genres: Iterable[str]) -> str:
    return GENRE_DELIMITER.join(genres)


# ---------------------------------------------------------------------
# Metadata Source Shapes
# ---------------------------------------------------------------------

class ItemStub(BaseModel):
    """
    Minimal reference to an item as known by the metadata source.
    """
    external_id: int
    title: str = ""
    rating_hint: Optional[float] = None

    model_config = ConfigDict(frozen=True)


class ItemDetail(BaseModel):
    """
    Full metadata for one item. Immutable once fetched.
    """
    external_id: int
    title: str = Field(..., min_length=1)
    overview: Optional[str] = None
    release_date: Optional[date] = None
    genres: Tuple[str, ...] = ()
    rating: Optional[float] = None
    popularity: Optional[float] = None
    poster_path: Optional[str] = None
    trailer_key: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("genres", mode="before")
    @classmethod
    def _normalize_genres(cls, v):
        return parse_genres(v)

    def to_record_fields(self) -> Dict[str, Any]:
        """Column values for a new catalog row; genres are joined for storage."""
        fields = self.model_dump()
        fields["genres"] = join_genres(self.genres)
        return fields


# ---------------------------------------------------------------------
# Catalog Record
# ---------------------------------------------------------------------

class CatalogRecord(BaseModel):
    """
    Durable catalog entry, as read back from storage.

    Built from ORM rows via `model_validate(row)`; the delimited genre column
    is parsed into a tuple on the way in.
    """
    id: int
    external_id: int
    title: str
    overview: Optional[str] = None
    release_date: Optional[date] = None
    genres: Tuple[str, ...] = ()
    rating: Optional[float] = None
    popularity: Optional[float] = None
    poster_path: Optional[str] = None
    trailer_key: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @field_validator("genres", mode="before")
    @classmethod
    def _normalize_genres(cls, v):
        return parse_genres(v)

    @property
    def genre_set(self) -> FrozenSet[str]:
        return frozenset(self.genres)

    @property
    def genres_text(self) -> str:
        return join_genres(self.genres)

    @property
    def trailer_url(self) -> Optional[str]:
        return YOUTUBE_EMBED_BASE + self.trailer_key if self.trailer_key else None

    def poster_url(self, image_base_url: str) -> Optional[str]:
        return image_base_url + self.poster_path if self.poster_path else None

    def descriptive_text(self) -> str:
        """Title, genres and overview, space separated; used as a query fragment."""
        parts = [self.title, self.genres_text, self.overview or ""]
        return " ".join(p for p in parts if p)


# ---------------------------------------------------------------------
# Write Outcome
# ---------------------------------------------------------------------

class WriteStatus(str, Enum):
    SAVED = "saved"
    SKIPPED_EXISTS = "skipped_exists"
    SKIPPED_BELOW_QUALITY = "skipped_below_quality"


@dataclass(frozen=True)
class WriteResult:
    """
    Outcome of `CatalogWriter.write`.

    `record` is the newly persisted row for SAVED, the pre-existing row for
    SKIPPED_EXISTS, and None for SKIPPED_BELOW_QUALITY.
    """
    status: WriteStatus
    record: Optional[CatalogRecord] = None

    @classmethod
    def saved(cls, record: CatalogRecord) -> "WriteResult":
        return cls(WriteStatus.SAVED, record)

    @classmethod
    def exists(cls, record: CatalogRecord) -> "WriteResult":
        return cls(WriteStatus.SKIPPED_EXISTS, record)

    @classmethod
    def below_quality(cls) -> "WriteResult":
        return cls(WriteStatus.SKIPPED_BELOW_QUALITY)

    @property
    def is_saved(self) -> bool:
        return self.status is WriteStatus.SAVED
