"""
Embedding Worker Pool

A bounded FIFO queue decouples the seeding producer from a fixed-size pool of
embedding workers. A single dispatcher task drains the queue, waits for a free
worker slot and submits each job as its own task, keeping the handles so the
pool can be drained on close.

Queue messages are a tagged variant:

- EmbedJob(record, retries)  : a record to embed
- CLOSE                      : no more jobs follow

Backpressure is lossy: `offer` waits a bounded time for space and drops the
record (with a warning) if the queue is still full.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple, Optional, Protocol, Set, Union

from ..catalog.models import CatalogRecord
from ..config import settings
from ..observability import PipelineObserver, notify

logger = logging.getLogger("nextwatch.embedding_pool")


class RecordEmbedder(Protocol):
    async def store(self, record: CatalogRecord) -> None: ...


# ---------------------------------------------------------------------
# Queue Messages
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class EmbedJob:
    """A record waiting to be embedded, with the retries already spent on it."""
    record: CatalogRecord
    retries: int = 0


class QueueClosed:
    """Sentinel type; use the `CLOSE` instance."""

    def __repr__(self) -> str:
        return "CLOSE"


CLOSE = QueueClosed()

QueueMessage = Union[EmbedJob, QueueClosed]


# ---------------------------------------------------------------------
# Retry Policy
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with growing backoff: the wait before retry n (0-based) is
    `backoff_base * (n + 1)` seconds.
    """
    max_retries: int = 2
    backoff_base: float = 1.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_retries

    def backoff(self, attempt: int) -> float:
        return self.backoff_base * (attempt + 1)


class PoolStats(NamedTuple):
    submitted: int
    embedded: int
    failed: int
    dropped: int
    attempts: int
    cancelled: int


# ---------------------------------------------------------------------
# Worker Pool
# ---------------------------------------------------------------------

class EmbeddingWorkerPool:
    def __init__(
        self,
        service: RecordEmbedder,
        workers: Optional[int] = None,
        capacity: Optional[int] = None,
        enqueue_timeout: Optional[float] = None,
        drain_timeout: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        observer: Optional[PipelineObserver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._service = service
        self._workers = workers or settings.embedding_workers
        self._enqueue_timeout = (
            settings.embedding_enqueue_timeout if enqueue_timeout is None else enqueue_timeout
        )
        self._drain_timeout = (
            settings.embedding_drain_timeout if drain_timeout is None else drain_timeout
        )
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=settings.embedding_max_retries,
            backoff_base=settings.embedding_backoff_base,
        )
        self._observer = observer or PipelineObserver()
        self._sleep = sleep

        self._queue: asyncio.Queue[QueueMessage] = asyncio.Queue(
            maxsize=capacity or settings.embedding_queue_capacity
        )
        self._slots = asyncio.Semaphore(self._workers)
        self._inflight: Set[asyncio.Task] = set()
        self._dispatcher: Optional[asyncio.Task] = None
        self._closed = False

        self._submitted = 0
        self._embedded = 0
        self._failed = 0
        self._dropped = 0
        self._attempts = 0
        self._cancelled = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Start the dispatcher task (idempotent)."""
        if self._dispatcher is None:
            self._dispatcher = asyncio.create_task(
                self._dispatch(),
                name="embedding-dispatcher",
            )
        return self._dispatcher

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    @property
    def stats(self) -> PoolStats:
        return PoolStats(
            submitted=self._submitted,
            embedded=self._embedded,
            failed=self._failed,
            dropped=self._dropped,
            attempts=self._attempts,
            cancelled=self._cancelled,
        )

    async def offer(self, record: CatalogRecord) -> bool:
        """
        Enqueue a record for embedding, waiting at most `enqueue_timeout`.

        Returns False if the pool is closed or the queue stayed full; the
        record is then not embedded on this run.
        """
        if self._closed:
            logger.warning("Embedding queue closed, not accepting %s", record.title)
            self._dropped += 1
            return False

        job = EmbedJob(record)
        try:
            self._queue.put_nowait(job)
            return True
        except asyncio.QueueFull:
            pass

        try:
            await asyncio.wait_for(self._queue.put(job), timeout=self._enqueue_timeout)
        except asyncio.TimeoutError:
            logger.warning("Embedding queue full, dropping item: %s", record.title)
            self._dropped += 1
            return False
        return True

    async def close(self, timeout: Optional[float] = None) -> bool:
        """
        Enqueue the CLOSE sentinel behind every job already queued.

        Returns False if the sentinel could not be enqueued within `timeout`.
        """
        if self._closed:
            return True
        self._closed = True

        timeout = settings.embedding_join_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(self._queue.put(CLOSE), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("Could not enqueue close sentinel within %.1fs", timeout)
            return False
        return True

    async def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait up to `timeout` for the dispatcher to drain and return.

        The dispatcher keeps running if the wait times out. Returns True if it
        finished.
        """
        if self._dispatcher is None:
            return True

        timeout = settings.embedding_join_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(asyncio.shield(self._dispatcher), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Embedding dispatcher did not complete in %.1fs", timeout)
            return False
        return True

    async def shutdown(self, timeout: Optional[float] = None) -> int:
        """
        Wait up to `timeout` for in-flight jobs, then cancel whatever is still
        running, including the dispatcher. Returns the number of cancelled
        tasks.
        """
        timeout = settings.executor_shutdown_timeout if timeout is None else timeout

        pending = set(self._inflight)
        if pending:
            _, pending = await asyncio.wait(pending, timeout=timeout)

        cancelled = await self._cancel_all(pending)

        if self._dispatcher is not None and not self._dispatcher.done():
            self._dispatcher.cancel()
            await asyncio.gather(self._dispatcher, return_exceptions=True)

        if cancelled:
            logger.warning("Cancelled %d tasks in embedding pool", cancelled)
        return cancelled

    # ------------------------------------------------------------------
    # Per-item embedding
    # ------------------------------------------------------------------

    async def embed_with_retry(self, record: CatalogRecord, attempt: int = 0) -> bool:
        """
        Embed `record`, retrying the same item in place on failure.

        Returns True once embedded, False after the retry budget is spent.
        """
        started = time.perf_counter()

        while True:
            self._attempts += 1
            logger.debug("Embedding attempt %d for item: %s", attempt + 1, record.title)
            try:
                await self._service.store(record)
            except Exception as exc:
                if self.retry_policy.should_retry(attempt):
                    logger.warning(
                        "Failed to embed item %s (attempt %d), retrying...",
                        record.title,
                        attempt + 1,
                    )
                    await self._sleep(self.retry_policy.backoff(attempt))
                    attempt += 1
                    continue

                logger.error(
                    "Failed to embed item %s after %d attempts: %s",
                    record.title,
                    attempt + 1,
                    exc,
                )
                self._failed += 1
                self._report(record, started, success=False, attempts=attempt + 1)
                return False

            logger.debug("Embedded item: %s", record.title)
            self._embedded += 1
            self._report(record, started, success=True, attempts=attempt + 1)
            return True

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    async def _dispatch(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if isinstance(message, QueueClosed):
                    logger.info(
                        "Embedding queue closed, waiting for %d pending embeddings...",
                        len(self._inflight),
                    )
                    await self._drain()
                    return

                await self._slots.acquire()
                self._submit(message)
            finally:
                self._queue.task_done()

    def _submit(self, job: EmbedJob) -> None:
        task = asyncio.create_task(self.embed_with_retry(job.record, job.retries))
        self._submitted += 1
        self._inflight.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        self._slots.release()

    async def _drain(self) -> None:
        pending = set(self._inflight)
        if not pending:
            return

        _, not_done = await asyncio.wait(pending, timeout=self._drain_timeout)
        if not_done:
            logger.warning(
                "%d embedding tasks still running after %.1fs, cancelling",
                len(not_done),
                self._drain_timeout,
            )
            await self._cancel_all(not_done)

    async def _cancel_all(self, tasks: Set[asyncio.Task]) -> int:
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._cancelled += len(tasks)
        return len(tasks)

    def _report(self, record: CatalogRecord, started: float, success: bool, attempts: int) -> None:
        latency_ms = (time.perf_counter() - started) * 1000.0
        notify(self._observer.item_embedded, record.title, latency_ms, success, attempts)
