"""Tests for process wiring: startup ordering and run-once mode."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest

import scraper


def _workers(order: list) -> MagicMock:
    workers = MagicMock()
    workers.item_sync.run.side_effect = lambda: order.append("items")
    workers.price_sync.run.side_effect = lambda: order.append("prices")
    workers.recovery.recover.side_effect = lambda stop: order.append("recovery")
    workers.pruning.run_pruning.side_effect = lambda: order.append("pruning")
    return workers


def test_run_once_runs_catalog_first() -> None:
    order = []

    assert scraper.run_once(_workers(order)) == 0

    assert order == ["items", "prices", "recovery", "pruning"]


def test_run_once_continues_after_failures() -> None:
    order = []
    workers = _workers(order)
    workers.item_sync.run.side_effect = RuntimeError("catalog down")
    workers.price_sync.run.side_effect = RuntimeError("prices down")

    assert scraper.run_once(workers) == 0

    assert order == ["recovery", "pruning"]


def test_daemon_starts_workers_after_initial_item_sync() -> None:
    order = []
    workers = _workers(order)
    stop_event = threading.Event()
    stop_event.set()

    with patch.object(scraper.signal, "signal"), \
            patch.object(scraper, "start_workers", side_effect=lambda w, s: order.append("workers") or []):
        scraper.run_daemon(workers, stop_event)

    assert order == ["items", "workers"]


def test_open_storage_failure_is_fatal(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")

    with pytest.raises(SystemExit) as excinfo:
        scraper.open_storage(str(blocker / "db.sqlite3"))
    assert excinfo.value.code == 2


def test_open_storage_creates_schema(tmp_path) -> None:
    storage = scraper.open_storage(str(tmp_path / "db.sqlite3"))

    assert storage.count_items() == 0
    assert storage.history_counts() == {}
