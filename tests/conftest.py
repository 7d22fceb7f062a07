"""Shared fixtures for the scraper test suite."""

from __future__ import annotations

import datetime
import os

# Must be set before core.logger is imported anywhere.
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest
import pytz

from core.models import CatalogItem, HistoryPoint
from core.storage import Storage


@pytest.fixture
def storage(tmp_path) -> Storage:
    """Fresh SQLite store in a temp directory."""
    store = Storage(str(tmp_path / "market.sqlite3"))
    store.ensure_db()
    return store


@pytest.fixture
def now() -> datetime.datetime:
    """Fixed 'now', aligned to a 6h boundary so bucket maths is predictable."""
    return datetime.datetime(2025, 6, 1, 12, 0, 0, tzinfo=pytz.UTC)


def make_item(item_id: int, tradeable: bool = True, name: str | None = None) -> CatalogItem:
    return CatalogItem(
        id=item_id,
        name=name or f"Item {item_id}",
        type="Weapon",
        rarity="Exotic",
        level=80,
        vendor_value=100,
        tradeable=tradeable,
    )


def make_point(item_id: int, ts: datetime.datetime, price: int = 10) -> HistoryPoint:
    return HistoryPoint(
        item_id=item_id,
        timestamp=ts,
        buy_price=price,
        sell_price=price + 1,
        buy_quantity=100,
        sell_quantity=100,
    )
