"""
One-shot catalog seeding run.

    python scripts/seed_catalog.py --max-items 500

Ctrl-C (or SIGTERM) asks the run to stop early; it still drains the
embedding queue and prints its statistics before exiting.
"""

import argparse
import asyncio
import logging
import signal

from dotenv import load_dotenv
load_dotenv()

from nextwatch.catalog.writer import CatalogWriter
from nextwatch.config import settings
from nextwatch.db.catalog_repository import CatalogRepository
from nextwatch.db.session import init_models
from nextwatch.db.vector_store import VectorStore
from nextwatch.embeddings.embedder import Embedder
from nextwatch.embeddings.service import ItemEmbeddingService
from nextwatch.metadata.tmdb_client import TMDbClient
from nextwatch.seeding.orchestrator import SeedingOrchestrator

logger = logging.getLogger("nextwatch.seed_catalog")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the catalog from the metadata source.")
    parser.add_argument("--max-items", type=int, default=settings.seed_max_items)
    parser.add_argument("--init-db", action="store_true", help="Create the vector extension and tables first")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    return parser.parse_args()


async def main(max_items: int, init_db: bool = False) -> int:
    if init_db:
        await init_models()

    orchestrator = SeedingOrchestrator(
        source=TMDbClient(),
        writer=CatalogWriter(CatalogRepository()),
        embedding_service=ItemEmbeddingService(Embedder(), VectorStore()),
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, orchestrator.request_stop)

    result = await orchestrator.run(max_items)
    if result.rejected:
        logger.error("Another seeding run is already in progress")
        return 1

    stats = result.stats
    print(f"Added {stats.added} items, skipped {stats.skipped} in {stats.duration_seconds:.1f}s")
    return 0


if __name__ == "__main__":
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    raise SystemExit(asyncio.run(main(args.max_items, args.init_db)))
