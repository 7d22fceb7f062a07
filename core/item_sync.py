# core/item_sync.py
from typing import List, Sequence

from .logger import get_logger

logger = get_logger(__name__)

BATCH_SIZE = 200


def chunked(ids: Sequence[int], size: int) -> List[Sequence[int]]:
    return [ids[i:i + size] for i in range(0, len(ids), size)]


class ItemSync:
    """
    Mirrors the GW2 item catalog into storage.

    A run is skipped entirely when the upstream id count equals the number of
    stored items. That is a cheap heuristic, not a diff: an equal number of
    additions and removals goes unnoticed until the counts differ again.
    """

    def __init__(self, storage, gateway, batch_size: int = BATCH_SIZE):
        self.storage = storage
        self.gateway = gateway
        self.batch_size = batch_size

    def run(self) -> int:
        """Sync the catalog. Returns the number of items upserted."""
        logger.info("Starting item sync...")
        all_ids = self.gateway.fetch_all_item_ids()
        logger.info("Found %d items.", len(all_ids))

        stored = self.storage.count_items()
        if stored == len(all_ids):
            logger.info("Skipping item upserts as count matches (%d items).", stored)
            return 0

        upserted = 0
        for i, batch in enumerate(chunked(all_ids, self.batch_size)):
            if i % 10 == 0:
                logger.info("Syncing item batch %d...", i + 1)
            items = self.gateway.fetch_items(batch)
            upserted += self.storage.upsert_items(items)

        logger.info("Item sync complete (%d items upserted).", upserted)
        return upserted
