# core/scheduler.py
import threading
import time
from typing import Callable

from .logger import get_logger

logger = get_logger(__name__)


def run_periodic(
    name: str,
    action: Callable[[], object],
    period: float,
    stop_event: threading.Event,
) -> None:
    """
    Run `action` now and then once per `period` seconds until `stop_event` is set.

    The stop event is only looked at between runs; an action that is already
    running is always allowed to finish. Exceptions from the action are logged
    and the loop carries on with the next tick.
    """
    next_tick = time.monotonic()
    while True:
        wait_for = max(0.0, next_tick - time.monotonic())
        if stop_event.wait(wait_for):
            logger.info("%s worker shutting down...", name)
            return

        try:
            action()
        except Exception as e:
            logger.exception("%s error: %s", name, e)

        next_tick += period
        now = time.monotonic()
        if next_tick < now:
            # Overran at least one period: run again right away, no catch-up burst.
            logger.debug("%s overran its %.0fs period.", name, period)
            next_tick = now


def spawn(
    name: str,
    action: Callable[[], object],
    period: float,
    stop_event: threading.Event,
) -> threading.Thread:
    """Start run_periodic() on a daemon thread named after the worker."""
    thread = threading.Thread(
        target=run_periodic,
        args=(name, action, period, stop_event),
        name=name,
        daemon=True,
    )
    thread.start()
    logger.info("Started %s worker (every %.0fs).", name, period)
    return thread
