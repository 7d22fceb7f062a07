# core/price_sync.py
from .item_sync import BATCH_SIZE, chunked
from .logger import get_logger
from .storage import StorageError

logger = get_logger(__name__)


class PriceSync:
    """
    Polls live trading post prices, refreshes each item's price snapshot and
    appends one history point per priced item.

    Snapshot updates must all succeed: the first failure aborts the run.
    The history append for a batch is best effort and only logged on failure.
    """

    def __init__(self, storage, gateway, batch_size: int = BATCH_SIZE):
        self.storage = storage
        self.gateway = gateway
        self.batch_size = batch_size

    def run(self) -> int:
        """Sync prices. Returns the number of price records applied."""
        logger.info("Starting price sync...")
        all_ids = self.gateway.fetch_all_price_ids()
        logger.info("Found %d prices to sync.", len(all_ids))

        synced = 0
        for i, batch in enumerate(chunked(all_ids, self.batch_size)):
            if i % 10 == 0:
                logger.info("Syncing price batch %d...", i + 1)
            points = self.gateway.fetch_prices(batch)

            synced += self.storage.merge_items_prices(points)

            try:
                self.storage.insert_history(points)
            except StorageError as e:
                logger.warning(
                    "Failed to append %d history points for price batch %d: %s",
                    len(points), i + 1, e,
                )

        logger.info("Price sync complete (%d prices).", synced)
        return synced
