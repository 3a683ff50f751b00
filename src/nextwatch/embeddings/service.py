"""
Item Embedding Service

Turns a catalog record into its embedding document, embeds it and upserts the
vector together with an identifier mirror of the record.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol

from .embedder import Embedder
from ..catalog.models import CatalogRecord

logger = logging.getLogger("nextwatch.embedder")


class VectorWriter(Protocol):
    async def upsert(self, item_id: int, embedding: List[float], metadata: Dict[str, Any]) -> None: ...


def build_item_document(record: CatalogRecord) -> str:
    """
    Render the text that represents `record` in vector space.

    Absent fields are omitted rather than rendered empty.
    """
    lines = [f"Title: {record.title}"]

    if record.release_date is not None:
        lines.append(f"Release Date: {record.release_date.isoformat()}")
    if record.genres:
        lines.append(f"Genres: {record.genres_text}")
    if record.rating is not None:
        lines.append(f"Rating: {record.rating:.1f}/10")
    if record.popularity is not None:
        lines.append(f"Popularity: {record.popularity:.1f}")
    if record.overview:
        lines.append(f"Overview: {record.overview}")

    return "\n".join(lines) + "\n"


class ItemEmbeddingService:
    def __init__(self, embedder: Embedder, vector_store: VectorWriter) -> None:
        self._embedder = embedder
        self._vector_store = vector_store

    async def store(self, record: CatalogRecord) -> None:
        """
        Embed and persist one record. Errors propagate to the caller, which
        owns the retry policy.
        """
        vector = await self._embedder.embed_one(build_item_document(record))
        await self._vector_store.upsert(
            record.id,
            vector,
            {
                "item_id": record.id,
                "external_id": record.external_id,
                "title": record.title,
            },
        )
        logger.info("Stored embedding for item: %s", record.title)
