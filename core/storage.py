# core/storage.py
import datetime
import os
import sqlite3
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

import pytz

from .models import CatalogItem, HistoryPoint, PriceDetail
from .logger import get_logger

logger = get_logger(__name__)

DB_PATH = os.getenv("DB_PATH", "/data/gw2_market.sqlite3")

# Rows per executemany() call for history inserts.
INSERT_CHUNK_SIZE = 500


class StorageError(Exception):
    """Any failure talking to the SQLite store."""


def to_epoch(ts: datetime.datetime) -> int:
    if ts.tzinfo is None:
        ts = pytz.UTC.localize(ts)
    return int(ts.timestamp())


def from_epoch(value: int) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(int(value), tz=pytz.UTC)


class Storage:
    """
    SQLite-backed store for catalog items and their price history.

    Every call opens its own connection, so one Storage instance can be
    shared by all worker threads. Batch calls commit row by row.
    """

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            parent = os.path.dirname(self.db_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            con = sqlite3.connect(self.db_path, timeout=30)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"cannot open {self.db_path}: {e}") from e
        try:
            with con:
                yield con
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        finally:
            con.close()

    def ensure_db(self):
        with self._connect() as con:
            cur = con.cursor()
            cur.execute("PRAGMA journal_mode=WAL")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS items (
                    id INTEGER PRIMARY KEY,
                    name TEXT,
                    type TEXT,
                    rarity TEXT,
                    level INTEGER,
                    vendor_value INTEGER,
                    tradeable INTEGER,
                    buy_quantity INTEGER,
                    buy_unit_price INTEGER,
                    sell_quantity INTEGER,
                    sell_unit_price INTEGER,
                    last_price_update TEXT
                )
            """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS item_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    item_id INTEGER,
                    timestamp INTEGER,   -- unix seconds, UTC
                    buy_price INTEGER,
                    sell_price INTEGER,
                    buy_quantity INTEGER,
                    sell_quantity INTEGER
                )
            """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS item_history_item_ts_idx "
                "ON item_history (item_id, timestamp)"
            )

    # ----------------------------
    # Catalog
    # ----------------------------

    def upsert_items(self, items: Iterable[CatalogItem]) -> int:
        """
        Create or replace catalog rows by id. Price snapshot columns are left
        alone so a catalog refresh never wipes live prices.
        """
        rows = [
            (
                it.id,
                it.name,
                it.type,
                it.rarity,
                it.level,
                it.vendor_value,
                1 if it.tradeable else 0,
            )
            for it in items
        ]
        if not rows:
            return 0
        # One connection per batch, one commit per item.
        with self._connect() as con:
            for row in rows:
                con.execute(
                    """
                    INSERT INTO items (id, name, type, rarity, level, vendor_value, tradeable)
                    VALUES (?,?,?,?,?,?,?)
                    ON CONFLICT(id) DO UPDATE SET
                        name=excluded.name,
                        type=excluded.type,
                        rarity=excluded.rarity,
                        level=excluded.level,
                        vendor_value=excluded.vendor_value,
                        tradeable=excluded.tradeable
                """,
                    row,
                )
                con.commit()
        return len(rows)

    def upsert_item(self, item: CatalogItem) -> None:
        self.upsert_items([item])

    def count_items(self) -> int:
        with self._connect() as con:
            row = con.execute("SELECT COUNT(*) FROM items").fetchone()
        return row[0] if row and row[0] is not None else 0

    def merge_item_prices(self, point: HistoryPoint) -> None:
        self.merge_items_prices([point])

    def merge_items_prices(self, points: Iterable[HistoryPoint]) -> int:
        """
        Overwrite the price snapshot of each item from its live price point,
        committing item by item. No existence check: an unknown id updates
        nothing. A failure leaves the earlier items of the batch updated.
        """
        merged = 0
        with self._connect() as con:
            for point in points:
                con.execute(
                    """
                    UPDATE items SET
                        buy_quantity=?,
                        buy_unit_price=?,
                        sell_quantity=?,
                        sell_unit_price=?,
                        last_price_update=?
                    WHERE id=?
                """,
                    (
                        point.buy_quantity,
                        point.buy_price,
                        point.sell_quantity,
                        point.sell_price,
                        point.timestamp.astimezone(pytz.UTC).isoformat(),
                        point.item_id,
                    ),
                )
                con.commit()
                merged += 1
        return merged

    def get_item(self, item_id: int) -> Optional[CatalogItem]:
        with self._connect() as con:
            row = con.execute(
                """
                SELECT id, name, type, rarity, level, vendor_value, tradeable,
                       buy_quantity, buy_unit_price, sell_quantity, sell_unit_price,
                       last_price_update
                FROM items WHERE id=?
            """,
                (item_id,),
            ).fetchone()
        if row is None:
            return None

        (iid, name, type_, rarity, level, vendor_value, tradeable,
         buy_qty, buy_price, sell_qty, sell_price, last_update) = row
        return CatalogItem(
            id=iid,
            name=name,
            type=type_,
            rarity=rarity,
            level=level,
            vendor_value=vendor_value,
            tradeable=bool(tradeable),
            buys=PriceDetail(buy_qty, buy_price) if buy_price is not None else None,
            sells=PriceDetail(sell_qty, sell_price) if sell_price is not None else None,
            last_price_update=(
                datetime.datetime.fromisoformat(last_update) if last_update else None
            ),
        )

    def tradeable_item_ids(self) -> List[int]:
        with self._connect() as con:
            rows = con.execute(
                "SELECT id FROM items WHERE id IS NOT NULL AND tradeable=1 ORDER BY id"
            ).fetchall()
        return [r[0] for r in rows]

    # ----------------------------
    # History
    # ----------------------------

    def insert_history(self, points: Iterable[HistoryPoint]) -> int:
        """Append history rows; each chunk commits independently."""
        rows = [
            (
                p.item_id,
                to_epoch(p.timestamp),
                p.buy_price,
                p.sell_price,
                p.buy_quantity,
                p.sell_quantity,
            )
            for p in points
        ]
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            with self._connect() as con:
                con.executemany(
                    """
                    INSERT INTO item_history (
                        item_id, timestamp, buy_price, sell_price,
                        buy_quantity, sell_quantity
                    )
                    VALUES (?,?,?,?,?,?)
                """,
                    rows[start:start + INSERT_CHUNK_SIZE],
                )
        return len(rows)

    def history_counts(self) -> Dict[int, int]:
        """Return mapping item_id -> number of stored history points."""
        with self._connect() as con:
            rows = con.execute(
                "SELECT item_id, COUNT(*) FROM item_history GROUP BY item_id"
            ).fetchall()
        return {item_id: count for item_id, count in rows}

    def get_history(self, item_id: Optional[int] = None) -> List[HistoryPoint]:
        sql = (
            "SELECT item_id, timestamp, buy_price, sell_price, buy_quantity, sell_quantity "
            "FROM item_history"
        )
        params: tuple = ()
        if item_id is not None:
            sql += " WHERE item_id=?"
            params = (item_id,)
        sql += " ORDER BY item_id, timestamp, id"
        with self._connect() as con:
            rows = con.execute(sql, params).fetchall()
        return [
            HistoryPoint(
                item_id=iid,
                timestamp=from_epoch(ts),
                buy_price=bp,
                sell_price=sp,
                buy_quantity=bq,
                sell_quantity=sq,
            )
            for iid, ts, bp, sp, bq, sq in rows
        ]

    def delete_superseded_history(
        self,
        bucket_seconds: int,
        newest: datetime.datetime,
        oldest: Optional[datetime.datetime] = None,
    ) -> int:
        """
        Delete every point with oldest < timestamp <= newest for which the same
        item has a strictly earlier point in the same bucket_seconds-wide
        bucket. Buckets are aligned to the unix epoch. Returns rows deleted.
        """
        sql = """
            DELETE FROM item_history
            WHERE timestamp <= :newest
        """
        params = {"newest": to_epoch(newest), "width": int(bucket_seconds)}
        if oldest is not None:
            sql += " AND timestamp > :oldest"
            params["oldest"] = to_epoch(oldest)
        sql += """
              AND EXISTS (
                SELECT 1 FROM item_history AS earlier
                WHERE earlier.item_id = item_history.item_id
                  AND earlier.timestamp - (earlier.timestamp % :width)
                      = item_history.timestamp - (item_history.timestamp % :width)
                  AND earlier.timestamp < item_history.timestamp
              )
        """
        with self._connect() as con:
            cur = con.execute(sql, params)
            return cur.rowcount
