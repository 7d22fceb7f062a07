# core/recovery.py
import threading

from fetchers.gw2 import GatewayError

from .logger import get_logger
from .storage import StorageError

logger = get_logger(__name__)

# Items with fewer stored points than this get their chart history backfilled.
RECOVERY_THRESHOLD = 5

# Minimum gap between two chart fetches (gw2bltc has unpublished rate limits).
FETCH_SPACING = 0.1


class HistoryRecovery:
    """Backfills price history from the chart API for sparsely covered items."""

    def __init__(
        self,
        storage,
        gateway,
        threshold: int = RECOVERY_THRESHOLD,
        spacing: float = FETCH_SPACING,
    ):
        self.storage = storage
        self.gateway = gateway
        self.threshold = threshold
        self.spacing = spacing

    def select_items(self) -> list[int]:
        """Return tradeable item ids with fewer than `threshold` history points."""
        item_ids = self.storage.tradeable_item_ids()
        logger.info("Checked %d items for history recovery.", len(item_ids))

        counts = self.storage.history_counts()
        return [iid for iid in item_ids if counts.get(iid, 0) < self.threshold]

    def recover(self, stop_event: threading.Event) -> int:
        """
        Fetch and store chart history for every selected item, one at a time.
        Returns the number of points inserted. Stops early, without error, when
        `stop_event` is set during the pause between two items.
        """
        logger.info("Starting historical data recovery check...")
        to_recover = self.select_items()
        logger.info("Found %d items needing history recovery.", len(to_recover))

        inserted = 0
        for i, item_id in enumerate(to_recover):
            if i % 50 == 0:
                logger.info("Recovering history: %d/%d", i + 1, len(to_recover))

            inserted += self._recover_item(item_id)

            if stop_event.wait(self.spacing):
                logger.info(
                    "Historical data recovery shutting down (%d/%d items done).",
                    i + 1, len(to_recover),
                )
                return inserted

        logger.info("Historical data recovery complete (%d points).", inserted)
        return inserted

    def _recover_item(self, item_id: int) -> int:
        try:
            history = self.gateway.fetch_item_history(item_id)
        except GatewayError as e:
            logger.warning("Failed to fetch history for item %s: %s", item_id, e)
            return 0

        if not history:
            return 0

        try:
            return self.storage.insert_history(history)
        except StorageError as e:
            logger.warning("Failed to store history for item %s: %s", item_id, e)
            return 0
