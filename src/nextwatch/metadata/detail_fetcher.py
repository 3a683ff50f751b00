"""
Detail Fetcher

Fans out detail requests for a batch of item stubs, bounded by a fixed-size
worker pool and a per-request timeout. A slow or failing item is logged and
dropped; it never blocks the rest of the batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol, Sequence, Set

from ..catalog.models import ItemDetail, ItemStub
from ..config import settings

logger = logging.getLogger("nextwatch.fetcher")


class DetailSource(Protocol):
    async def details(self, external_id: int) -> ItemDetail: ...


class DetailFetcher:
    """
    Bounded parallel detail fetcher.

    At most `workers` requests are in flight at once regardless of how many
    stubs a batch holds. Results are returned in completion order.
    """

    def __init__(
        self,
        source: DetailSource,
        workers: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._source = source
        self._workers = workers or settings.fetch_workers
        self._timeout = timeout or settings.fetch_timeout
        self._semaphore = asyncio.Semaphore(self._workers)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def workers(self) -> int:
        return self._workers

    async def fetch_all(
        self,
        stubs: Sequence[ItemStub],
        timeout_per_item: Optional[float] = None,
    ) -> List[ItemDetail]:
        """
        Fetch details for every stub, dropping timeouts and failures.

        Parameters
        ----------
        stubs : Sequence[ItemStub]
            Items to resolve. Each yields at most one detail.
        timeout_per_item : Optional[float]
            Bound on a single details call once it holds a worker slot.

        Returns
        -------
        List[ItemDetail]
            Successfully fetched details, in completion order.
        """
        if not stubs:
            return []

        timeout = timeout_per_item or self._timeout
        tasks = [self._spawn(stub, timeout) for stub in stubs]
        results: List[ItemDetail] = []

        try:
            for next_done in asyncio.as_completed(tasks):
                detail = await next_done
                if detail is not None:
                    results.append(detail)
        finally:
            # Only non-empty if we were cancelled mid-batch
            for task in tasks:
                if not task.done():
                    task.cancel()

        logger.debug("Fetched %d/%d details", len(results), len(stubs))
        return results

    async def shutdown(self, timeout: Optional[float] = None) -> int:
        """
        Wait up to `timeout` for outstanding fetches, then cancel the rest.

        Returns the number of cancelled tasks.
        """
        pending = set(self._tasks)
        if not pending:
            return 0

        timeout = settings.executor_shutdown_timeout if timeout is None else timeout
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()

        if still_running:
            logger.warning("Cancelled %d tasks in detail fetch pool", len(still_running))
        return len(still_running)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _spawn(self, stub: ItemStub, timeout: float) -> asyncio.Task:
        task = asyncio.create_task(self._fetch_one(stub, timeout))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _fetch_one(self, stub: ItemStub, timeout: float) -> Optional[ItemDetail]:
        async with self._semaphore:
            try:
                return await asyncio.wait_for(self._source.details(stub.external_id), timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Timeout fetching details for item %s after %.1fs",
                    stub.external_id,
                    timeout,
                )
            except Exception as exc:
                logger.warning(
                    "Failed to fetch details for item %s: %s",
                    stub.external_id,
                    exc,
                )
        return None
