"""
Shared fixtures and in-memory fakes for the pipeline and retrieval tests.
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Union

import pytest

from nextwatch.catalog.models import CatalogRecord, ItemDetail, ItemStub
from nextwatch.db.catalog_repository import DuplicateItemError
from nextwatch.db.vector_store import VectorHit
from nextwatch.embeddings.embedder import EmbeddingError
from nextwatch.metadata.tmdb_client import MetadataSourceError
from nextwatch.observability import PipelineObserver


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------

def make_detail(
    external_id: int,
    title: Optional[str] = None,
    rating: Optional[float] = 7.5,
    genres: Union[str, Sequence[str]] = ("Drama",),
    overview: Optional[str] = "A story worth telling.",
) -> ItemDetail:
    return ItemDetail(
        external_id=external_id,
        title=title or f"Movie {external_id}",
        rating=rating,
        genres=genres,
        overview=overview,
        popularity=12.5,
    )


def make_record(
    item_id: int,
    title: Optional[str] = None,
    genres: Union[str, Sequence[str]] = "Drama",
    rating: Optional[float] = 7.5,
    overview: Optional[str] = "A story worth telling.",
    external_id: Optional[int] = None,
) -> CatalogRecord:
    return CatalogRecord(
        id=item_id,
        external_id=external_id if external_id is not None else 1000 + item_id,
        title=title or f"Movie {item_id}",
        genres=genres,
        rating=rating,
        overview=overview,
    )


# ---------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------

class InMemoryCatalog:
    """
    Stands in for CatalogRepository. `hide_once` makes the next lookup of an
    external id miss, as if a concurrent writer had not committed yet.
    """

    def __init__(self) -> None:
        self.rows: Dict[int, CatalogRecord] = {}
        self.hide_once = set()
        self.insert_calls = 0
        self._next_id = 1

    def add(self, record: CatalogRecord) -> CatalogRecord:
        self.rows[record.id] = record
        self._next_id = max(self._next_id, record.id + 1)
        return record

    async def get_by_id(self, item_id: int) -> Optional[CatalogRecord]:
        return self.rows.get(item_id)

    async def get_by_external_id(self, external_id: int) -> Optional[CatalogRecord]:
        if external_id in self.hide_once:
            self.hide_once.discard(external_id)
            return None
        for record in self.rows.values():
            if record.external_id == external_id:
                return record
        return None

    async def find_by_title(self, title: str) -> Optional[CatalogRecord]:
        for record in sorted(self.rows.values(), key=lambda r: r.id):
            if record.title.lower() == title.strip().lower():
                return record
        return None

    async def insert(self, detail: ItemDetail) -> CatalogRecord:
        self.insert_calls += 1
        if any(r.external_id == detail.external_id for r in self.rows.values()):
            raise DuplicateItemError(detail.external_id)
        record = CatalogRecord(id=self._next_id, **detail.to_record_fields())
        self._next_id += 1
        self.rows[record.id] = record
        return record


# ---------------------------------------------------------------------
# Metadata source
# ---------------------------------------------------------------------

class FakeSource:
    """
    Pages are lists of details (or an exception to raise for that page).
    `block_pages` holds paginate until `release` is set.
    """

    def __init__(
        self,
        pages: Optional[Dict[int, Union[List[ItemDetail], Exception]]] = None,
        search_results: Optional[Dict[str, List[ItemDetail]]] = None,
        failing_details: Sequence[int] = (),
    ) -> None:
        self.pages = pages or {}
        self.search_results = {k.lower(): v for k, v in (search_results or {}).items()}
        self.failing_details = set(failing_details)
        self.details_by_id: Dict[int, ItemDetail] = {}
        for page in self.pages.values():
            if isinstance(page, list):
                self.details_by_id.update({d.external_id: d for d in page})
        for found in self.search_results.values():
            self.details_by_id.update({d.external_id: d for d in found})

        self.block_pages = False
        self.release = asyncio.Event()
        self.page_calls: List[int] = []
        self.search_calls: List[str] = []

    async def paginate(self, page: int) -> List[ItemStub]:
        self.page_calls.append(page)
        if self.block_pages:
            await self.release.wait()
        content = self.pages.get(page, [])
        if isinstance(content, Exception):
            raise content
        return [ItemStub(external_id=d.external_id, title=d.title) for d in content]

    async def search(self, title: str) -> List[ItemStub]:
        self.search_calls.append(title)
        found = self.search_results.get(title.lower(), [])
        return [ItemStub(external_id=d.external_id, title=d.title) for d in found]

    async def details(self, external_id: int) -> ItemDetail:
        if external_id in self.failing_details or external_id not in self.details_by_id:
            raise MetadataSourceError(f"no details for {external_id}")
        return self.details_by_id[external_id]


# ---------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------

class FlakyEmbeddingService:
    """
    Fails the first `failures[title]` attempts for a title, then succeeds.
    """

    def __init__(self, failures: Optional[Dict[str, int]] = None, delay: float = 0.0) -> None:
        self.failures = failures or {}
        self.delay = delay
        self.calls: Dict[str, int] = defaultdict(int)
        self.stored: List[int] = []
        self.active = 0
        self.max_active = 0

    async def store(self, record: CatalogRecord) -> None:
        self.calls[record.title] += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.calls[record.title] <= self.failures.get(record.title, 0):
                raise EmbeddingError(f"embedding failed for {record.title}")
            self.stored.append(record.id)
        finally:
            self.active -= 1


class FakeEmbedder:
    def __init__(self) -> None:
        self.texts: List[str] = []

    async def embed_one(self, text: str) -> List[float]:
        self.texts.append(text)
        return [0.1, 0.2, 0.3]


class FakeVectorSearch:
    """Returns the given item ids as hits, in order, truncated to k."""

    def __init__(self, item_ids: Sequence[int]) -> None:
        self.item_ids = list(item_ids)
        self.requested_k: List[int] = []

    async def search(self, query_embedding: List[float], k: int = 10) -> List[VectorHit]:
        self.requested_k.append(k)
        return [
            VectorHit(item_id=item_id, external_id=1000 + item_id, title="", rank=rank, score=1.0 - rank * 0.05)
            for rank, item_id in enumerate(self.item_ids[:k])
        ]


# ---------------------------------------------------------------------
# Observer
# ---------------------------------------------------------------------

class RecordingObserver(PipelineObserver):
    def __init__(self) -> None:
        self.events = defaultdict(list)

    def ingestion_finished(self, stats) -> None:
        self.events["ingestion_finished"].append(stats)

    def item_embedded(self, title, latency_ms, success, attempts) -> None:
        self.events["item_embedded"].append((title, success, attempts))

    def candidates_retrieved(self, count, similarity_scores) -> None:
        self.events["candidates_retrieved"].append((count, list(similarity_scores)))

    def explanation_generated(self, latency_ms, prompt_chars, response_chars) -> None:
        self.events["explanation_generated"].append((prompt_chars, response_chars))

    def explanation_failed(self, error) -> None:
        self.events["explanation_failed"].append(error)

    def request_started(self, titles) -> None:
        self.events["request_started"].append(list(titles))

    def request_succeeded(self, returned, latency_ms) -> None:
        self.events["request_succeeded"].append(returned)

    def request_failed(self, error) -> None:
        self.events["request_failed"].append(error)


class FailingObserver(PipelineObserver):
    """Collector that is down: every hook raises."""

    def _fail(self, *args) -> None:
        raise RuntimeError("collector down")

    ingestion_finished = item_embedded = candidates_retrieved = _fail
    explanation_generated = explanation_failed = _fail
    request_started = request_succeeded = request_failed = _fail


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def catalog():
    return InMemoryCatalog()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def no_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep
