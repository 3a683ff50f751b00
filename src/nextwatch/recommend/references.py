"""
Reference resolution: user-supplied titles to catalog records.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

from ..catalog.models import CatalogRecord, ItemDetail, ItemStub
from ..catalog.writer import CatalogWriter

logger = logging.getLogger("nextwatch.references")


class ReferenceNotFoundError(LookupError):
    """Raised when a title is neither in the catalog nor found by the metadata source."""

    def __init__(self, title: str) -> None:
        super().__init__(f"Movie not found: {title}")
        self.title = title


class TitleLookup(Protocol):
    async def find_by_title(self, title: str) -> Optional[CatalogRecord]: ...


class SearchSource(Protocol):
    async def search(self, title: str) -> List[ItemStub]: ...

    async def details(self, external_id: int) -> ItemDetail: ...


class ReferenceResolver:
    def __init__(self, catalog: TitleLookup, source: SearchSource, writer: CatalogWriter) -> None:
        self._catalog = catalog
        self._source = source
        self._writer = writer

    async def resolve(self, title: str) -> CatalogRecord:
        """
        Find `title` in the catalog, or look it up in the metadata source and
        save it without an embedding.

        Raises
        ------
        ReferenceNotFoundError
            If the metadata source has no match for the title.
        """
        record = await self._catalog.find_by_title(title)
        if record is not None:
            return record

        logger.info("Movie not in catalog, searching metadata source: %s", title)
        stubs = await self._source.search(title)
        if not stubs:
            raise ReferenceNotFoundError(title)

        detail = await self._source.details(stubs[0].external_id)
        return await self._writer.ensure(detail)

    async def resolve_all(self, titles: Sequence[str]) -> List[CatalogRecord]:
        """
        Resolve titles in order, skipping blanks and collapsing titles that
        resolve to the same record.
        """
        records: List[CatalogRecord] = []
        seen = set()
        for title in titles:
            if not title or not title.strip():
                continue
            record = await self.resolve(title.strip())
            if record.id in seen:
                continue
            seen.add(record.id)
            records.append(record)
        return records
