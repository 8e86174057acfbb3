"""
Adapter: Binance spot market data.

Implements MarketDataPort over the public REST API:
    - GET /api/v3/ticker/24hr  (universe selection, 24h quote volume)
    - GET /api/v3/klines       (1-minute candles)
    - GET /api/v3/depth        (order book)

Every failure surfaces as MarketDataUnavailableError so the watcher can
log it and move on to the next symbol.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from marketwatch.domain.anomaly.entities import Candle, OrderBookLevel, TickerStats
from marketwatch.domain.anomaly.errors import MarketDataUnavailableError
from marketwatch.domain.anomaly.ports import MarketDataPort

logger = logging.getLogger(__name__)

# Leveraged tokens and stablecoin pairs are never interesting anomalies.
_EXCLUDED_SUFFIXES = ("UPUSDT", "DOWNUSDT", "BULLUSDT", "BEARUSDT")
_STABLE_BASES = {"USDC", "BUSD", "TUSD", "FDUSD", "USDP", "DAI"}


class BinanceMarketDataAdapter(MarketDataPort):
    """Binance REST implementation of the market data port.

    Args:
        base_url: API root, e.g. ``https://api.binance.com``.
        timeout: Per-request timeout in seconds.
        client: Optional pre-built httpx client (tests inject a MockTransport).
    """

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str, symbol: str, params: Optional[dict] = None) -> Any:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise MarketDataUnavailableError(
                symbol, f"{path} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MarketDataUnavailableError(symbol, f"{path}: {exc}") from exc
        except ValueError as exc:
            raise MarketDataUnavailableError(symbol, f"{path}: invalid JSON") from exc

    def list_top_symbols(self, quote_asset: str, limit: int) -> list[str]:
        data = self._get("/api/v3/ticker/24hr", "*")
        try:
            tickers = [
                (item["symbol"], float(item["quoteVolume"]))
                for item in data
                if item["symbol"].endswith(quote_asset)
                and not item["symbol"].endswith(_EXCLUDED_SUFFIXES)
                and item["symbol"][: -len(quote_asset)] not in _STABLE_BASES
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise MarketDataUnavailableError("*", f"malformed ticker list: {exc}") from exc

        tickers.sort(key=lambda pair: pair[1], reverse=True)
        symbols = [symbol for symbol, _ in tickers[:limit]]
        logger.debug("Top %d %s pairs resolved", len(symbols), quote_asset)
        return symbols

    def get_ticker(self, symbol: str) -> TickerStats:
        data = self._get("/api/v3/ticker/24hr", symbol, {"symbol": symbol})
        try:
            return TickerStats(
                symbol=data["symbol"],
                last_price=float(data["lastPrice"]),
                price_change_percent=float(data["priceChangePercent"]),
                quote_volume=float(data["quoteVolume"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MarketDataUnavailableError(symbol, f"malformed ticker: {exc}") from exc

    def get_candles(self, symbol: str, limit: int) -> list[Candle]:
        data = self._get(
            "/api/v3/klines",
            symbol,
            {"symbol": symbol, "interval": "1m", "limit": limit},
        )
        try:
            # [open_time, open, high, low, close, volume, close_time, quote_volume, ...]
            return [
                Candle(
                    open_time=datetime.fromtimestamp(row[0] / 1000, tz=timezone.utc),
                    open=float(row[1]),
                    high=float(row[2]),
                    low=float(row[3]),
                    close=float(row[4]),
                    quote_volume=float(row[7]),
                )
                for row in data
            ]
        except (IndexError, TypeError, ValueError) as exc:
            raise MarketDataUnavailableError(symbol, f"malformed klines: {exc}") from exc

    def get_order_book(
        self, symbol: str, limit: int
    ) -> tuple[list[OrderBookLevel], list[OrderBookLevel]]:
        data = self._get("/api/v3/depth", symbol, {"symbol": symbol, "limit": limit})
        try:
            bids = [OrderBookLevel(float(p), float(q)) for p, q in data["bids"]]
            asks = [OrderBookLevel(float(p), float(q)) for p, q in data["asks"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise MarketDataUnavailableError(symbol, f"malformed depth: {exc}") from exc
        return bids, asks
