import asyncio
import logging

import pytest

from nextwatch.catalog.models import ItemStub
from nextwatch.metadata.detail_fetcher import DetailFetcher

from conftest import FakeSource, make_detail


def stubs(*ids):
    return [ItemStub(external_id=i) for i in ids]


class SlowSource:
    def __init__(self, slow_ids=(), delay=0.01):
        self.slow_ids = set(slow_ids)
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def details(self, external_id):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(5 if external_id in self.slow_ids else self.delay)
            return make_detail(external_id)
        finally:
            self.active -= 1


@pytest.mark.asyncio
async def test_failures_are_dropped(caplog):
    source = FakeSource(pages={1: [make_detail(1), make_detail(2), make_detail(3)]}, failing_details=[2])
    fetcher = DetailFetcher(source, workers=2, timeout=1.0)

    with caplog.at_level(logging.WARNING, logger="nextwatch.fetcher"):
        details = await fetcher.fetch_all(stubs(1, 2, 3))

    assert sorted(d.external_id for d in details) == [1, 3]
    assert "Failed to fetch details for item 2" in caplog.text


@pytest.mark.asyncio
async def test_timeout_drops_item_without_blocking_batch():
    source = SlowSource(slow_ids={2})
    fetcher = DetailFetcher(source, workers=3, timeout=1.0)

    details = await fetcher.fetch_all(stubs(1, 2, 3), timeout_per_item=0.05)

    assert sorted(d.external_id for d in details) == [1, 3]


@pytest.mark.asyncio
async def test_concurrency_bounded_by_worker_count():
    source = SlowSource(delay=0.01)
    fetcher = DetailFetcher(source, workers=3, timeout=1.0)

    details = await fetcher.fetch_all(stubs(*range(1, 21)))

    assert len(details) == 20
    assert len({d.external_id for d in details}) == 20
    assert source.max_active <= 3


@pytest.mark.asyncio
async def test_empty_batch():
    fetcher = DetailFetcher(FakeSource(), workers=2)
    assert await fetcher.fetch_all([]) == []
    assert await fetcher.shutdown(timeout=0.1) == 0
