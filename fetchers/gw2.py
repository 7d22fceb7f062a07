import os
from typing import Any, List, Sequence

import requests

from core.logger import get_logger
from core.models import (
    CatalogItem,
    HistoryPoint,
    item_from_raw,
    now_utc,
    point_from_chart,
    point_from_price,
)

logger = get_logger(__name__)

GW2_API_URL = os.getenv("GW2_API_URL", "https://api.guildwars2.com").rstrip("/")
GW2_CHART_URL = os.getenv("GW2_CHART_URL", "https://www.gw2bltc.com").rstrip("/")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))
USER_AGENT = os.getenv("USER_AGENT", "gw2-market-scraper/0.1")


class GatewayError(Exception):
    """Transport, status or payload failure from one of the market APIs."""


def _join_ids(ids: Sequence[int]) -> str:
    return ",".join(str(int(i)) for i in ids)


class MarketGateway:
    """
    Thin client for the GW2 catalog/price API and the gw2bltc chart API.
    Holds no state apart from the HTTP session; never retries.
    """

    def __init__(
        self,
        api_url: str = GW2_API_URL,
        chart_url: str = GW2_CHART_URL,
        timeout: float = HTTP_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.chart_url = chart_url.rstrip("/")
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
        self.session = session

    def _get(self, url: str, params: dict | None = None) -> requests.Response:
        logger.debug("GET %s params=%s", url, params)
        try:
            return self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise GatewayError(f"GET {url} failed: {e}") from e

    def _get_json(self, url: str, params: dict | None = None) -> Any:
        resp = self._get(url, params)
        return self._decode(url, resp)

    @staticmethod
    def _decode(url: str, resp: requests.Response) -> Any:
        # 206 is how /v2 answers when some of the requested ids are unknown
        if resp.status_code not in (200, 206):
            raise GatewayError(f"GET {url} returned status {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(f"GET {url} returned invalid JSON: {e}") from e

    @staticmethod
    def _expect_list(url: str, data: Any) -> list:
        if not isinstance(data, list):
            raise GatewayError(f"GET {url} returned {type(data).__name__}, expected list")
        return data

    def _fetch_id_list(self, url: str) -> List[int]:
        data = self._expect_list(url, self._get_json(url))
        try:
            return [int(i) for i in data]
        except (TypeError, ValueError) as e:
            raise GatewayError(f"GET {url} returned a non-integer id: {e}") from e

    # ----------------------------
    # Catalog
    # ----------------------------

    def fetch_all_item_ids(self) -> List[int]:
        return self._fetch_id_list(f"{self.api_url}/v2/items")

    def fetch_items(self, ids: Sequence[int]) -> List[CatalogItem]:
        if not ids:
            return []
        url = f"{self.api_url}/v2/items"
        data = self._expect_list(url, self._get_json(url, {"ids": _join_ids(ids)}))

        items: List[CatalogItem] = []
        for raw in data:
            try:
                items.append(item_from_raw(raw))
            except (KeyError, TypeError, ValueError) as e:
                raise GatewayError(f"GET {url} returned a malformed item record {raw!r}: {e}") from e
        return items

    # ----------------------------
    # Prices
    # ----------------------------

    def fetch_all_price_ids(self) -> List[int]:
        return self._fetch_id_list(f"{self.api_url}/v2/commerce/prices")

    def fetch_prices(self, ids: Sequence[int]) -> List[HistoryPoint]:
        """Fetch live prices; every point of one call carries the same timestamp."""
        if not ids:
            return []
        url = f"{self.api_url}/v2/commerce/prices"
        data = self._expect_list(url, self._get_json(url, {"ids": _join_ids(ids)}))

        now = now_utc()
        points: List[HistoryPoint] = []
        for raw in data:
            try:
                points.append(point_from_price(raw, now))
            except (KeyError, TypeError, ValueError) as e:
                raise GatewayError(f"GET {url} returned a malformed price record {raw!r}: {e}") from e
        return points

    # ----------------------------
    # Chart history
    # ----------------------------

    def fetch_item_history(self, item_id: int) -> List[HistoryPoint]:
        """
        Fetch the full chart history of one item from gw2bltc.
        A 404 means the site has no chart for the item and yields [].
        """
        url = f"{self.chart_url}/api/tp/chart/{int(item_id)}"
        resp = self._get(url)
        if resp.status_code == 404:
            return []
        data = self._expect_list(url, self._decode(url, resp))

        points: List[HistoryPoint] = []
        for row in data:
            point = point_from_chart(item_id, row)
            if point is None:
                logger.debug("Dropping short chart row for item %s: %r", item_id, row)
                continue
            points.append(point)
        return points
