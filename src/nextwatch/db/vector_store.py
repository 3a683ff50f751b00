"""
Vector Store

PostgreSQL + pgvector based storage and similarity search for item
embeddings. One vector per catalog item; re-embedding an item replaces its
vector in place.
"""

from __future__ import annotations

from typing import Any, Dict, List, NamedTuple

from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import ItemEmbedding
from .session import AsyncSessionLocal


class VectorHit(NamedTuple):
    """A single nearest-neighbour result, ordered by `rank` (0 = closest)."""
    item_id: int
    external_id: int
    title: str
    rank: int
    score: float


class VectorStore:
    """
    pgvector-backed store for item embeddings.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    ) -> None:
        self._session_factory = session_factory

    async def upsert(
        self,
        item_id: int,
        embedding: List[float],
        metadata: Dict[str, Any],
    ) -> None:
        """
        Insert or replace the embedding for a catalog item.

        Parameters
        ----------
        item_id : int
            Internal catalog id, also the primary key of the vector row.
        embedding : List[float]
            Embedding vector.
        metadata : Dict[str, Any]
            Identifier mirror; must contain `external_id` and `title`.
        """
        stmt = pg_insert(ItemEmbedding).values(
            item_id=item_id,
            external_id=metadata["external_id"],
            title=metadata["title"],
            embedding=embedding,
        ).on_conflict_do_update(
            index_elements=[ItemEmbedding.item_id],
            set_={
                "external_id": metadata["external_id"],
                "title": metadata["title"],
                "embedding": embedding,
                "embedded_at": func.now(),
            },
        )

        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def search(
        self,
        query_embedding: List[float],
        k: int = 10,
    ) -> List[VectorHit]:
        """
        Return the `k` nearest items by cosine distance, closest first.
        """
        cosine_distance = ItemEmbedding.embedding.cosine_distance(query_embedding)

        stmt = (
            select(
                ItemEmbedding.item_id,
                ItemEmbedding.external_id,
                ItemEmbedding.title,
                (1 - cosine_distance).label("score"),
            )
            .order_by(cosine_distance)
            .limit(k)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            VectorHit(
                item_id=row.item_id,
                external_id=row.external_id,
                title=row.title,
                rank=rank,
                score=float(row.score),
            )
            for rank, row in enumerate(rows)
        ]

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(ItemEmbedding))
            return result.scalar() or 0
