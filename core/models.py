# core/models.py
import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import pytz

# Any of these flags means the item can never reach the trading post.
UNTRADEABLE_FLAGS = frozenset({"AccountBound", "SoulbindOnAcquire", "NoSell"})

# [timestamp, sell_price, buy_price, supply, demand]
CHART_ROW_FIELDS = 5


@dataclass
class PriceDetail:
    quantity: int
    unit_price: int


@dataclass
class CatalogItem:
    """
    Mirrored definition of one in-game item, keyed by its external GW2 id.
    The price snapshot is only filled in by price sync.
    """
    id: int
    name: str
    type: str = ""
    rarity: str = ""
    level: int = 0
    vendor_value: int = 0
    tradeable: bool = True
    buys: Optional[PriceDetail] = None
    sells: Optional[PriceDetail] = None
    last_price_update: Optional[datetime.datetime] = None


@dataclass
class HistoryPoint:
    """One buy/sell observation for an item at a UTC timestamp."""
    item_id: int
    timestamp: datetime.datetime
    buy_price: int
    sell_price: int
    buy_quantity: int
    sell_quantity: int


def is_tradeable(flags: Sequence[str] | None) -> bool:
    return not UNTRADEABLE_FLAGS.intersection(flags or ())


def item_from_raw(raw: Dict[str, Any]) -> CatalogItem:
    """Map a /v2/items record to a CatalogItem; unknown upstream fields are ignored."""
    return CatalogItem(
        id=int(raw["id"]),
        name=str(raw.get("name") or ""),
        type=str(raw.get("type") or ""),
        rarity=str(raw.get("rarity") or ""),
        level=int(raw.get("level") or 0),
        vendor_value=int(raw.get("vendor_value") or 0),
        tradeable=is_tradeable(raw.get("flags")),
    )


def point_from_price(raw: Dict[str, Any], timestamp: datetime.datetime) -> HistoryPoint:
    """Map a /v2/commerce/prices record to a HistoryPoint taken at `timestamp`."""
    buys = raw["buys"]
    sells = raw["sells"]
    return HistoryPoint(
        item_id=int(raw["id"]),
        timestamp=timestamp,
        buy_price=int(buys["unit_price"]),
        sell_price=int(sells["unit_price"]),
        buy_quantity=int(buys["quantity"]),
        sell_quantity=int(sells["quantity"]),
    )


def point_from_chart(item_id: int, row: Sequence[Any]) -> Optional[HistoryPoint]:
    """
    Parse one chart row [unix_seconds, sell_price, buy_price, supply, demand].
    Supply is what sellers list (sell quantity), demand is what buyers order
    (buy quantity). Returns None for short or non-numeric rows.
    """
    if not isinstance(row, (list, tuple)) or len(row) < CHART_ROW_FIELDS:
        return None
    try:
        ts, sell_price, buy_price, supply, demand = (int(v) for v in row[:CHART_ROW_FIELDS])
        timestamp = datetime.datetime.fromtimestamp(ts, tz=pytz.UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None

    return HistoryPoint(
        item_id=item_id,
        timestamp=timestamp,
        buy_price=buy_price,
        sell_price=sell_price,
        buy_quantity=demand,
        sell_quantity=supply,
    )


def now_utc() -> datetime.datetime:
    return datetime.datetime.now(tz=pytz.UTC)
