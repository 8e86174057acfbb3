"""
Adapter: CoinGecko market capitalization lookup.

Implements MarketCapPort. Fetches ``/api/v3/coins/markets`` (USD, sorted
by market cap) and keeps an in-memory symbol -> cap table for a TTL.
When two coins share a ticker the larger cap wins. After a failed refresh
no request is made for ``retry_seconds``; the stale table (if any) is
served meanwhile.
"""

import logging
import threading
import time
from typing import Callable, Optional

import httpx

from marketwatch.domain.anomaly.errors import MarketDataUnavailableError
from marketwatch.domain.anomaly.ports import MarketCapPort

logger = logging.getLogger(__name__)


class CoinGeckoMarketCapAdapter(MarketCapPort):
    """Market caps from CoinGecko, cached for ``ttl_seconds``.

    Args:
        base_url: API root, e.g. ``https://api.coingecko.com``.
        quote_asset: Quote suffix stripped from trading pairs (``BTCUSDT`` -> ``btc``).
        ttl_seconds: How long a fetched table stays fresh.
        retry_seconds: Cooldown after a failed refresh.
        pages: Number of 250-coin pages to load.
        timeout: Per-request timeout in seconds.
        client: Optional pre-built httpx client.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com",
        quote_asset: str = "USDT",
        ttl_seconds: float = 600.0,
        retry_seconds: float = 60.0,
        pages: int = 2,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._quote_asset = quote_asset.upper()
        self._ttl = ttl_seconds
        self._retry = retry_seconds
        self._pages = pages
        self._caps: dict[str, float] = {}
        self._loaded_at: Optional[float] = None
        self._retry_at: Optional[float] = None
        self._clock = clock
        self._lock = threading.Lock()

    def close(self) -> None:
        self._client.close()

    def _base_asset(self, symbol: str) -> str:
        symbol = symbol.upper()
        if symbol.endswith(self._quote_asset):
            symbol = symbol[: -len(self._quote_asset)]
        return symbol.lower()

    def _fetch(self) -> dict[str, float]:
        caps: dict[str, float] = {}
        for page in range(1, self._pages + 1):
            response = self._client.get(
                "/api/v3/coins/markets",
                params={
                    "vs_currency": "usd",
                    "order": "market_cap_desc",
                    "per_page": 250,
                    "page": page,
                },
            )
            response.raise_for_status()
            for coin in response.json():
                ticker = str(coin.get("symbol", "")).lower()
                cap = coin.get("market_cap")
                if not ticker or cap is None:
                    continue
                caps[ticker] = max(caps.get(ticker, 0.0), float(cap))
        return caps

    def _refresh_if_stale(self) -> None:
        now = self._clock()
        if self._loaded_at is not None and now - self._loaded_at < self._ttl:
            return
        if self._retry_at is not None and now < self._retry_at:
            if self._loaded_at is None:
                raise MarketDataUnavailableError("*", "market caps: source cooling down")
            return
        try:
            self._caps = self._fetch()
            self._loaded_at = now
            self._retry_at = None
            logger.info("Market cap table refreshed: %d coins", len(self._caps))
        except (httpx.HTTPError, ValueError, TypeError) as exc:
            self._retry_at = now + self._retry
            if self._loaded_at is None:
                raise MarketDataUnavailableError("*", f"market caps: {exc}") from exc
            logger.warning(
                "Market cap refresh failed, serving stale table for %.0fs: %s",
                self._retry,
                exc,
            )

    def get_market_cap(self, symbol: str) -> Optional[float]:
        with self._lock:
            self._refresh_if_stale()
            return self._caps.get(self._base_asset(symbol))
