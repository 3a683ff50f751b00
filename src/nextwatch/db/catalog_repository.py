"""
Catalog Repository

Thin persistence layer over the `catalog_item` table. Each operation runs in
its own short session so that a long ingestion run never keeps a transaction
open between pages.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import CatalogItem
from .session import AsyncSessionLocal
from ..catalog.models import CatalogRecord, ItemDetail


class DuplicateItemError(RuntimeError):
    """Raised when an insert violates the external id uniqueness constraint."""

    def __init__(self, external_id: int) -> None:
        super().__init__(f"Catalog item with external id {external_id} already exists")
        self.external_id = external_id


class CatalogRepository:
    """
    PostgreSQL-backed catalog store keyed by internal id, unique on external id.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    ) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, item_id: int) -> Optional[CatalogRecord]:
        async with self._session_factory() as session:
            row = await session.get(CatalogItem, item_id)
            return CatalogRecord.model_validate(row) if row else None

    async def get_by_external_id(self, external_id: int) -> Optional[CatalogRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CatalogItem).where(CatalogItem.external_id == external_id)
            )
            row = result.scalar_one_or_none()
            return CatalogRecord.model_validate(row) if row else None

    async def find_by_title(self, title: str) -> Optional[CatalogRecord]:
        """
        Case-insensitive exact title lookup. Returns the oldest match.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(CatalogItem)
                .where(func.lower(CatalogItem.title) == title.strip().lower())
                .order_by(CatalogItem.id)
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return CatalogRecord.model_validate(row) if row else None

    async def insert(self, detail: ItemDetail) -> CatalogRecord:
        """
        Persist a new catalog item.

        Raises
        ------
        DuplicateItemError
            If another writer already inserted the same external id.
        """
        row = CatalogItem(**detail.to_record_fields())

        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateItemError(detail.external_id) from exc

            await session.refresh(row)
            return CatalogRecord.model_validate(row)

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(CatalogItem))
            return result.scalar() or 0
