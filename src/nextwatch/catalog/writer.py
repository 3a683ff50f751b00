"""
Catalog Writer

Applies the ingestion quality gate and dedup check to a fetched detail, then
persists it. Writes are idempotent: a concurrent insert of the same external
id resolves to the row that won the race instead of surfacing an error.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Tuple

from .models import CatalogRecord, ItemDetail, WriteResult
from ..config import settings
from ..db.catalog_repository import DuplicateItemError

logger = logging.getLogger("nextwatch.catalog")


class CatalogStore(Protocol):
    async def get_by_external_id(self, external_id: int) -> Optional[CatalogRecord]: ...

    async def insert(self, detail: ItemDetail) -> CatalogRecord: ...


class CatalogWriter:
    def __init__(self, store: CatalogStore, min_rating: Optional[float] = None) -> None:
        self._store = store
        self.min_rating = settings.min_rating if min_rating is None else min_rating

    def passes_quality_gate(self, detail: ItemDetail) -> bool:
        return detail.rating is not None and detail.rating >= self.min_rating

    async def write(self, detail: ItemDetail) -> WriteResult:
        """
        Gate, dedup and persist one detail during ingestion.

        Returns
        -------
        WriteResult
            SAVED with the new record, SKIPPED_EXISTS with the existing one,
            or SKIPPED_BELOW_QUALITY.
        """
        if not self.passes_quality_gate(detail):
            logger.debug(
                "Skipping %s: rating %s below %.1f",
                detail.title,
                detail.rating,
                self.min_rating,
            )
            return WriteResult.below_quality()

        existing = await self._store.get_by_external_id(detail.external_id)
        if existing is not None:
            return WriteResult.exists(existing)

        record, inserted = await self._insert_or_fetch(detail)
        return WriteResult.saved(record) if inserted else WriteResult.exists(record)

    async def ensure(self, detail: ItemDetail) -> CatalogRecord:
        """
        Return the catalog record for `detail`, creating it if needed.

        Used when a user references an item the catalog has not seen yet. No
        quality gate is applied and no embedding is scheduled.
        """
        existing = await self._store.get_by_external_id(detail.external_id)
        if existing is not None:
            return existing

        record, inserted = await self._insert_or_fetch(detail)
        if inserted:
            logger.info("Saved referenced item: %s (no embedding created)", record.title)
        return record

    async def _insert_or_fetch(self, detail: ItemDetail) -> Tuple[CatalogRecord, bool]:
        try:
            return await self._store.insert(detail), True
        except DuplicateItemError:
            logger.warning(
                "Duplicate item detected (external id %s), fetching existing",
                detail.external_id,
            )
            existing = await self._store.get_by_external_id(detail.external_id)
            if existing is None:
                raise
            return existing, False
