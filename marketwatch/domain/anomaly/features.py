"""
Feature extraction from raw market data.

Turns 1-minute candles, an order book and 24h ticker stats into the
SymbolSnapshot that Layer 1 and Layer 2 consume. All functions are
pure; the caller is responsible for fetching the inputs.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from marketwatch.domain.anomaly.entities import (
    Candle,
    OrderBookLevel,
    SymbolSnapshot,
    TickerStats,
)

DEFAULT_AVERAGE_PERIOD = 20
DEFAULT_RSI_WINDOW = 14
DEFAULT_ORDERBOOK_BAND = 0.02


def percent_change(open_price: float, close_price: float) -> float:
    """Return the percentage change from open to close (0 if open is 0)."""
    if not open_price:
        return 0.0
    return (close_price - open_price) / open_price * 100


def price_change_over(candles: Sequence[Candle], minutes: int) -> float:
    """Percentage change from the open ``minutes`` candles back to the last close.

    With 1m candles, ``minutes=1`` is the change within the latest candle.
    Falls back to the earliest available candle when history is short.
    """
    if not candles or minutes < 1:
        return 0.0
    start = candles[-min(minutes, len(candles))]
    return percent_change(start.open, candles[-1].close)


def average_volume(
    candles: Sequence[Candle], period: int = DEFAULT_AVERAGE_PERIOD
) -> float:
    """Mean quote volume of the ``period`` closed candles before the latest one.

    Returns 0.0 when fewer than ``period + 1`` candles are available.
    """
    if len(candles) < period + 1:
        return 0.0
    volumes = pd.Series([c.quote_volume for c in candles[-period - 1 : -1]])
    return float(volumes.mean())


def compute_rsi(
    closes: Sequence[float], window: int = DEFAULT_RSI_WINDOW
) -> Optional[float]:
    """Relative Strength Index over the last ``window`` price deltas.

    Simple-average variant: mean gain / mean loss of the final window.
    Returns None with fewer than ``window + 1`` closes, 100.0 when the
    window has no losses.
    """
    if len(closes) < window + 1:
        return None
    delta = pd.Series(closes, dtype="float64").diff()
    gain = delta.clip(lower=0)
    loss = -delta.clip(upper=0)
    avg_gain = gain.rolling(window=window, min_periods=window).mean().iloc[-1]
    avg_loss = loss.rolling(window=window, min_periods=window).mean().iloc[-1]
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    rsi = 100 - (100 / (1 + rs))
    return float(np.clip(rsi, 0.0, 100.0))


def orderbook_depth(
    bids: Sequence[OrderBookLevel],
    asks: Sequence[OrderBookLevel],
    band: float = DEFAULT_ORDERBOOK_BAND,
) -> tuple[float, float]:
    """Total quote value of bids and asks within ``band`` of the mid price.

    Returns ``(bid_value, ask_value)``; both 0.0 when either side is empty.
    """
    if not bids or not asks:
        return 0.0, 0.0
    best_bid = max(level.price for level in bids)
    best_ask = min(level.price for level in asks)
    mid = (best_bid + best_ask) / 2
    bid_value = sum(
        level.value for level in bids if level.price >= mid * (1 - band)
    )
    ask_value = sum(
        level.value for level in asks if level.price <= mid * (1 + band)
    )
    return float(bid_value), float(ask_value)


def build_snapshot(
    symbol: str,
    candles: Sequence[Candle],
    bids: Sequence[OrderBookLevel],
    asks: Sequence[OrderBookLevel],
    ticker: TickerStats,
    market_cap: Optional[float],
    average_period: int = DEFAULT_AVERAGE_PERIOD,
    rsi_window: int = DEFAULT_RSI_WINDOW,
    band: float = DEFAULT_ORDERBOOK_BAND,
    captured_at: Optional[datetime] = None,
) -> SymbolSnapshot:
    """Assemble a SymbolSnapshot from raw market data."""
    if candles:
        last_price = candles[-1].close
        current_volume = candles[-1].quote_volume
    else:
        last_price = ticker.last_price
        current_volume = 0.0

    bid_value: Optional[float] = None
    ask_value: Optional[float] = None
    if bids and asks:
        bid_value, ask_value = orderbook_depth(bids, asks, band)

    return SymbolSnapshot(
        symbol=symbol,
        last_price=last_price,
        price_change_1m=price_change_over(candles, 1),
        price_change_5m=price_change_over(candles, 5),
        current_volume=current_volume,
        average_volume=average_volume(candles, average_period),
        volume_24h=ticker.quote_volume,
        captured_at=captured_at or datetime.now(timezone.utc),
        market_cap=market_cap,
        rsi=compute_rsi([c.close for c in candles], rsi_window),
        total_bid_value=bid_value,
        total_ask_value=ask_value,
    )
