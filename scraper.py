import os
import signal
import threading
from typing import List

from core.logger import get_logger
from core.storage import Storage, StorageError, DB_PATH
from core.item_sync import ItemSync
from core.price_sync import PriceSync
from core.recovery import HistoryRecovery
from core.pruning import HistoryPruning
from core import scheduler
from fetchers.gw2 import MarketGateway

logger = get_logger(__name__)

MODE = os.getenv("MODE", "daemon").lower()  # "daemon" or "once"
ITEM_SYNC_SECONDS = int(os.getenv("ITEM_SYNC_SECONDS", "86400"))
PRICE_SYNC_SECONDS = int(os.getenv("PRICE_SYNC_SECONDS", "900"))
RECOVERY_SECONDS = int(os.getenv("RECOVERY_SECONDS", "86400"))
PRUNING_SECONDS = int(os.getenv("PRUNING_SECONDS", "86400"))


class Workers:
    """The four engines, wired to one shared storage and gateway."""

    def __init__(self, storage: Storage, gateway: MarketGateway):
        self.item_sync = ItemSync(storage, gateway)
        self.price_sync = PriceSync(storage, gateway)
        self.recovery = HistoryRecovery(storage, gateway)
        self.pruning = HistoryPruning(storage)


def open_storage(path: str = DB_PATH) -> Storage:
    storage = Storage(path)
    try:
        storage.ensure_db()
    except StorageError as e:
        logger.error("Failed to initialize database at %s: %s", path, e)
        raise SystemExit(2)
    return storage


def initial_item_sync(workers: Workers) -> None:
    # Price sync and recovery expect catalog rows to exist already.
    logger.info("Performing initial item sync...")
    try:
        workers.item_sync.run()
    except Exception as e:
        logger.exception("Initial item sync failed: %s", e)


def start_workers(workers: Workers, stop_event: threading.Event) -> List[threading.Thread]:
    return [
        scheduler.spawn("price-sync", workers.price_sync.run, PRICE_SYNC_SECONDS, stop_event),
        scheduler.spawn(
            "history-recovery",
            lambda: workers.recovery.recover(stop_event),
            RECOVERY_SECONDS,
            stop_event,
        ),
        scheduler.spawn("history-pruning", workers.pruning.run_pruning, PRUNING_SECONDS, stop_event),
        scheduler.spawn("item-sync", workers.item_sync.run, ITEM_SYNC_SECONDS, stop_event),
    ]


def run_once(workers: Workers) -> int:
    stop_event = threading.Event()
    initial_item_sync(workers)
    for name, action in (
        ("price sync", workers.price_sync.run),
        ("history recovery", lambda: workers.recovery.recover(stop_event)),
        ("history pruning", workers.pruning.run_pruning),
    ):
        try:
            action()
        except Exception as e:
            logger.exception("Unhandled error in %s: %s", name, e)
    return 0


def run_daemon(workers: Workers, stop_event: threading.Event | None = None) -> None:
    stop_event = stop_event or threading.Event()

    def _request_shutdown(signum, frame):
        logger.info("Shutdown signal %s received. Gracefully shutting down workers...", signum)
        stop_event.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _request_shutdown)
        signal.signal(signal.SIGTERM, _request_shutdown)

    initial_item_sync(workers)
    threads = start_workers(workers, stop_event)

    stop_event.wait()
    for t in threads:
        t.join()
    logger.info("All workers shut down. Exiting.")


def main() -> int:
    storage = open_storage()
    workers = Workers(storage, MarketGateway())
    if MODE == "once":
        return run_once(workers)
    run_daemon(workers)
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except SystemExit:
        raise
    except Exception as e:
        logger.exception("Fatal scraper error: %s", e)
        raise SystemExit(2)
