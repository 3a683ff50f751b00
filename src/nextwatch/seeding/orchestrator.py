"""
Seeding Orchestrator

Top-level controller for catalog ingestion. One run:

1. Claims the single-flight slot (IDLE -> RUNNING) or is rejected.
2. Pages through the metadata source, resolving each page with the Detail
   Fetcher and persisting details with the Catalog Writer.
3. Offers every newly saved record to the Embedding Worker Pool.
4. Paces itself between pages.
5. Always shuts down: close the pool, join the dispatcher, stop the fetch and
   embedding pools, log statistics and return to IDLE.

A stop request (or cancellation of the run task) during a page fetch or the
inter-page pause ends the loop early; the shutdown sequence still runs, so
records already written stay persisted and queued embeddings still complete.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol, TypeVar

from ..catalog.models import ItemStub, WriteStatus
from ..catalog.writer import CatalogWriter
from ..config import settings
from ..embeddings.queue import EmbeddingWorkerPool, RecordEmbedder
from ..metadata.detail_fetcher import DetailFetcher, DetailSource
from ..observability import PipelineObserver, notify
from .stats import SeedingStats

logger = logging.getLogger("nextwatch.seeder")

T = TypeVar("T")


class PageSource(DetailSource, Protocol):
    async def paginate(self, page: int) -> List[ItemStub]: ...


class SeedingState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class SeedingStatus(str, Enum):
    STARTED = "SEEDING_STARTED"
    COMPLETED = "SEEDING_COMPLETED"
    REJECTED = "SEEDING_IN_PROGRESS"


@dataclass(frozen=True)
class SeedingResult:
    status: SeedingStatus
    stats: Optional[SeedingStats] = None

    @property
    def rejected(self) -> bool:
        return self.status is SeedingStatus.REJECTED


class _StopRequested(Exception):
    """Raised inside the page loop when a stop was requested mid-fetch."""


class SeedingOrchestrator:
    def __init__(
        self,
        source: PageSource,
        writer: CatalogWriter,
        embedding_service: RecordEmbedder,
        observer: Optional[PipelineObserver] = None,
        fetcher_factory: Optional[Callable[[], DetailFetcher]] = None,
        pool_factory: Optional[Callable[[], EmbeddingWorkerPool]] = None,
        page_limit: Optional[int] = None,
        page_size: Optional[int] = None,
        page_delay: Optional[float] = None,
        join_timeout: Optional[float] = None,
        shutdown_timeout: Optional[float] = None,
    ) -> None:
        """
        Parameters
        ----------
        source : PageSource
            Metadata source providing `paginate` and `details`.

        writer : CatalogWriter
            Applies the quality gate and dedup before persisting.

        embedding_service : RecordEmbedder
            Per-record embed-and-store step run by the worker pool.

        fetcher_factory, pool_factory : Optional[Callable]
            Build a fresh Detail Fetcher / Embedding Worker Pool for each run.
            Defaults use the configured pool sizes and timeouts.

        page_limit, page_size, page_delay, join_timeout, shutdown_timeout
            Overrides for the corresponding settings.
        """
        self._source = source
        self._writer = writer
        self._embedding_service = embedding_service
        self._observer = observer or PipelineObserver()

        self._fetcher_factory = fetcher_factory or (lambda: DetailFetcher(source))
        self._pool_factory = pool_factory or (
            lambda: EmbeddingWorkerPool(embedding_service, observer=self._observer)
        )

        self._page_limit = page_limit or settings.seed_page_limit
        self._page_size = page_size or settings.seed_page_size
        self._page_delay = settings.seed_page_delay if page_delay is None else page_delay
        self._join_timeout = settings.embedding_join_timeout if join_timeout is None else join_timeout
        self._shutdown_timeout = (
            settings.executor_shutdown_timeout if shutdown_timeout is None else shutdown_timeout
        )

        self._state = SeedingState.IDLE
        self._state_lock = threading.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.last_stats: Optional[SeedingStats] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SeedingState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SeedingState.RUNNING

    def _try_claim(self) -> bool:
        with self._state_lock:
            if self._state is not SeedingState.IDLE:
                return False
            self._state = SeedingState.RUNNING
        self._stop_event = asyncio.Event()
        return True

    def _release(self) -> None:
        with self._state_lock:
            self._state = SeedingState.IDLE

    def request_stop(self) -> None:
        """Ask a running seeding run to stop after its current step."""
        if self.is_running:
            logger.info("Stop requested, finishing current step")
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(self, max_items: Optional[int] = None) -> SeedingResult:
        """
        Run one seeding pass to completion in the caller's task.

        Returns REJECTED without doing any work if a run is already in
        progress.
        """
        if not self._try_claim():
            logger.warning("Seeding already in progress, rejecting new run")
            return SeedingResult(SeedingStatus.REJECTED)

        stats = await self._execute(max_items or settings.seed_max_items)
        return SeedingResult(SeedingStatus.COMPLETED, stats)

    def start(self, max_items: Optional[int] = None) -> SeedingStatus:
        """
        Claim the single-flight slot and run seeding as a background task.

        Must be called from a running event loop. The rejection is decided
        synchronously, before this returns.
        """
        if not self._try_claim():
            logger.warning("Seeding already in progress, rejecting new run")
            return SeedingStatus.REJECTED

        self._task = asyncio.create_task(
            self._execute(max_items or settings.seed_max_items),
            name="catalog-seeding",
        )
        self._task.add_done_callback(self._on_run_done)
        return SeedingStatus.STARTED

    @staticmethod
    def _on_run_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background seeding run failed", exc_info=exc)

    async def wait(self) -> Optional[SeedingStats]:
        """Await the background run started by `start`, if any."""
        if self._task is None:
            return self.last_stats
        return await self._task

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _execute(self, max_items: int) -> SeedingStats:
        stats = SeedingStats()
        self.last_stats = stats
        logger.info(
            "Starting catalog seeding: target=%d items, max %d pages",
            max_items,
            self._page_limit,
        )

        try:
            fetcher = self._fetcher_factory()
            pool = self._pool_factory()
            pool.start()
            try:
                await self._page_loop(max_items, fetcher, pool, stats)
            except asyncio.CancelledError:
                stats.interrupted = True
                logger.warning("Seeding cancelled, shutting down workers")
                raise
            finally:
                await self._shutdown(fetcher, pool, stats)
        finally:
            self._release()

        return stats

    async def _page_loop(
        self,
        max_items: int,
        fetcher: DetailFetcher,
        pool: EmbeddingWorkerPool,
        stats: SeedingStats,
    ) -> None:
        page = 1
        while page <= self._page_limit and stats.added < max_items:
            if self._stop_event.is_set():
                stats.interrupted = True
                break

            try:
                stubs = await self._until_stopped(self._source.paginate(page))
                if not stubs:
                    logger.info("No more items at page %d, stopping", page)
                    break

                stats.fetched += len(stubs)
                details = await self._until_stopped(fetcher.fetch_all(stubs))

                for detail in details:
                    if stats.added >= max_items:
                        break

                    result = await self._writer.write(detail)
                    if result.status is WriteStatus.SKIPPED_BELOW_QUALITY:
                        stats.skipped_quality += 1
                        continue
                    if result.status is WriteStatus.SKIPPED_EXISTS:
                        stats.skipped_exists += 1
                        continue

                    stats.added += 1
                    logger.debug("Saved: %s", result.record.title)
                    if await pool.offer(result.record):
                        stats.enqueued += 1
                    else:
                        stats.dropped += 1

                    if stats.added % 100 == 0:
                        logger.info("Progress: %d items added", stats.added)

                stats.pages += 1
            except _StopRequested:
                stats.interrupted = True
                break
            except Exception:
                logger.exception("Error processing page %d", page)
                stats.failed_pages += 1
                stats.skipped_errors += self._page_size

            page += 1
            if stats.added < max_items and page <= self._page_limit:
                if await self._pause():
                    stats.interrupted = True
                    break

    async def _shutdown(
        self,
        fetcher: DetailFetcher,
        pool: EmbeddingWorkerPool,
        stats: SeedingStats,
    ) -> None:
        logger.info("Waiting for embedding queue to drain...")
        await pool.close(timeout=self._join_timeout)
        if not await pool.join(timeout=self._join_timeout):
            logger.warning("Embedding dispatcher did not finish, continuing shutdown")

        await fetcher.shutdown(timeout=self._shutdown_timeout)
        await pool.shutdown(timeout=self._shutdown_timeout)

        pool_stats = pool.stats
        stats.embedded = pool_stats.embedded
        stats.embedding_failed = pool_stats.failed
        stats.finish()
        stats.log_statistics()

        notify(self._observer.ingestion_finished, stats)

    # ------------------------------------------------------------------
    # Soft-stop helpers
    # ------------------------------------------------------------------

    async def _until_stopped(self, aw: Awaitable[T]) -> T:
        """
        Await `aw` unless a stop is requested first, in which case it is
        cancelled and `_StopRequested` is raised.
        """
        work = asyncio.ensure_future(aw)
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)

        if work.cancelled():
            raise _StopRequested()
        return work.result()

    async def _pause(self) -> bool:
        """Inter-page delay. Returns True if a stop was requested meanwhile."""
        if self._page_delay <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._page_delay)
        except asyncio.TimeoutError:
            return False
        return True
