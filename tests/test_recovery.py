"""Tests for history recovery (chart backfill)."""

from __future__ import annotations

import datetime
import threading
from unittest.mock import MagicMock

from conftest import make_item, make_point
from core.models import point_from_chart
from core.recovery import HistoryRecovery
from core.storage import Storage
from fetchers.gw2 import GatewayError


def _seed_points(storage: Storage, item_id: int, count: int, now) -> None:
    storage.insert_history(
        [make_point(item_id, now - datetime.timedelta(minutes=15 * i)) for i in range(count)]
    )


def _chart_gateway() -> MagicMock:
    gateway = MagicMock()
    gateway.fetch_item_history.side_effect = lambda item_id: [
        point_from_chart(item_id, [1735689600, 60, 50, 200, 100])
    ]
    return gateway


def test_threshold_selects_four_but_not_five(storage: Storage, now) -> None:
    storage.upsert_items([make_item(1), make_item(2), make_item(3)])
    _seed_points(storage, 1, 4, now)
    _seed_points(storage, 2, 5, now)

    recovery = HistoryRecovery(storage, MagicMock())

    assert recovery.select_items() == [1, 3]


def test_untradeable_items_are_not_selected(storage: Storage) -> None:
    storage.upsert_items([make_item(1, tradeable=False), make_item(2)])

    assert HistoryRecovery(storage, MagicMock()).select_items() == [2]


def test_recover_inserts_chart_history(storage: Storage) -> None:
    storage.upsert_items([make_item(1)])
    gateway = _chart_gateway()

    inserted = HistoryRecovery(storage, gateway, spacing=0).recover(threading.Event())

    assert inserted == 1
    history = storage.get_history(1)
    assert len(history) == 1
    assert history[0].timestamp == datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc)
    assert (history[0].sell_price, history[0].buy_price) == (60, 50)
    assert (history[0].sell_quantity, history[0].buy_quantity) == (200, 100)


def test_empty_history_is_a_noop(storage: Storage) -> None:
    storage.upsert_items([make_item(1)])
    gateway = MagicMock()
    gateway.fetch_item_history.return_value = []

    assert HistoryRecovery(storage, gateway, spacing=0).recover(threading.Event()) == 0
    assert storage.history_counts() == {}


def test_fetch_failure_moves_on_to_next_item(storage: Storage) -> None:
    storage.upsert_items([make_item(1), make_item(2)])
    gateway = _chart_gateway()
    good = gateway.fetch_item_history.side_effect

    def _flaky(item_id):
        if item_id == 1:
            raise GatewayError("502")
        return good(item_id)

    gateway.fetch_item_history.side_effect = _flaky

    assert HistoryRecovery(storage, gateway, spacing=0).recover(threading.Event()) == 1
    assert storage.history_counts() == {2: 1}


def test_items_are_fetched_sequentially_with_spacing(storage: Storage) -> None:
    storage.upsert_items([make_item(1), make_item(2), make_item(3)])
    stop_event = MagicMock()
    stop_event.wait.return_value = False

    HistoryRecovery(storage, _chart_gateway(), spacing=0.1).recover(stop_event)

    assert stop_event.wait.call_count == 3
    for call in stop_event.wait.call_args_list:
        assert call.args == (0.1,)


def test_cancellation_stops_at_next_item_boundary(storage: Storage) -> None:
    storage.upsert_items([make_item(1), make_item(2), make_item(3)])
    stop_event = threading.Event()
    gateway = _chart_gateway()
    good = gateway.fetch_item_history.side_effect

    def _cancel_during_first(item_id):
        stop_event.set()
        return good(item_id)

    gateway.fetch_item_history.side_effect = _cancel_during_first

    inserted = HistoryRecovery(storage, gateway, spacing=5).recover(stop_event)

    # The in-flight fetch finishes and is stored, later items are left alone.
    assert inserted == 1
    assert gateway.fetch_item_history.call_count == 1
    assert storage.history_counts() == {1: 1}
