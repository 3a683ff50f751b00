"""
Seeding run statistics.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger("nextwatch.seeder")


@dataclass
class SeedingStats:
    """
    Counters for one seeding run.

    Quality and dedup skips are normal filtering outcomes and are kept apart
    from `skipped_errors`, which counts items lost to failed pages.
    """
    added: int = 0
    skipped_quality: int = 0
    skipped_exists: int = 0
    skipped_errors: int = 0
    pages: int = 0
    failed_pages: int = 0
    fetched: int = 0
    enqueued: int = 0
    dropped: int = 0
    embedded: int = 0
    embedding_failed: int = 0
    interrupted: bool = False
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    @property
    def skipped(self) -> int:
        return self.skipped_quality + self.skipped_exists + self.skipped_errors

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return max(0.0, end - self.started_at)

    @property
    def rate(self) -> float:
        """Items added per second."""
        duration = self.duration_seconds
        return self.added / duration if duration > 0 else 0.0

    def finish(self) -> None:
        if self.finished_at is None:
            self.finished_at = time.monotonic()

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("started_at")
        data.pop("finished_at")
        data["skipped"] = self.skipped
        data["duration_seconds"] = round(self.duration_seconds, 3)
        data["rate"] = round(self.rate, 3)
        return data

    def log_statistics(self) -> None:
        logger.info("=== Seeding Statistics ===")
        logger.info("Items added: %d", self.added)
        logger.info(
            "Items skipped: %d (quality=%d, existing=%d, errors=%d)",
            self.skipped,
            self.skipped_quality,
            self.skipped_exists,
            self.skipped_errors,
        )
        logger.info("Pages processed: %d (failed=%d)", self.pages, self.failed_pages)
        logger.info("Embeddings queued: %d (dropped=%d)", self.enqueued, self.dropped)
        logger.info("Embeddings stored: %d (failed=%d)", self.embedded, self.embedding_failed)
        logger.info("Duration: %.1f seconds", self.duration_seconds)
        logger.info("Rate: %.2f items/second", self.rate)
        if self.interrupted:
            logger.info("Run was stopped early")
