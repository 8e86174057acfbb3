"""
Tests for feature extraction (candles / order book -> SymbolSnapshot).

Pure functions; no IO.
"""

import math

import pytest

from marketwatch.domain.anomaly.entities import OrderBookLevel
from marketwatch.domain.anomaly.features import (
    average_volume,
    build_snapshot,
    compute_rsi,
    orderbook_depth,
    percent_change,
    price_change_over,
)
from tests.conftest import T0, make_candles, make_ticker


class TestPriceChange:
    def test_percent_change(self):
        assert percent_change(100.0, 103.0) == pytest.approx(3.0)
        assert percent_change(100.0, 97.0) == pytest.approx(-3.0)

    def test_zero_open_is_zero(self):
        assert percent_change(0.0, 5.0) == 0.0

    def test_five_minute_change_uses_open_five_candles_back(self):
        candles = make_candles([100, 100, 100, 100, 101, 102, 103, 104, 106])
        # Five candles back opens at the close of candle index 3 (100).
        assert price_change_over(candles, 5) == pytest.approx(6.0)

    def test_one_minute_change_is_last_candle(self):
        candles = make_candles([100, 100, 110])
        assert price_change_over(candles, 1) == pytest.approx(10.0)

    def test_short_history_uses_earliest_candle(self):
        candles = make_candles([100, 102])
        assert price_change_over(candles, 5) == pytest.approx(2.0)

    def test_no_candles(self):
        assert price_change_over([], 5) == 0.0


class TestAverageVolume:
    def test_excludes_latest_candle(self):
        volumes = [100.0] * 20 + [10_000.0]
        candles = make_candles([1.0] * 21, volumes)
        assert average_volume(candles, 20) == pytest.approx(100.0)

    def test_uses_only_the_last_period(self):
        volumes = [9_999.0] * 5 + [200.0] * 20 + [1.0]
        candles = make_candles([1.0] * 26, volumes)
        assert average_volume(candles, 20) == pytest.approx(200.0)

    def test_not_enough_candles(self):
        candles = make_candles([1.0] * 20)
        assert average_volume(candles, 20) == 0.0


class TestRSI:
    def test_all_gains_is_100(self):
        closes = [float(i) for i in range(1, 20)]
        assert compute_rsi(closes, 14) == 100.0

    def test_all_losses_is_0(self):
        closes = [float(i) for i in range(20, 1, -1)]
        assert compute_rsi(closes, 14) == pytest.approx(0.0)

    def test_balanced_moves_near_50(self):
        closes = [100.0 + (i % 2) for i in range(30)]
        assert compute_rsi(closes, 14) == pytest.approx(50.0)

    def test_insufficient_history(self):
        assert compute_rsi([1.0] * 14, 14) is None

    def test_flat_prices_is_100(self):
        # No losses at all: the overbought convention applies.
        assert compute_rsi([5.0] * 20, 14) == 100.0


class TestOrderbookDepth:
    def test_counts_levels_inside_band(self):
        bids = [OrderBookLevel(99.0, 10), OrderBookLevel(90.0, 1_000)]
        asks = [OrderBookLevel(101.0, 5), OrderBookLevel(110.0, 1_000)]
        bid_value, ask_value = orderbook_depth(bids, asks, band=0.02)
        assert bid_value == pytest.approx(990.0)
        assert ask_value == pytest.approx(505.0)

    def test_empty_side(self):
        assert orderbook_depth([], [OrderBookLevel(1.0, 1.0)]) == (0.0, 0.0)


class TestBuildSnapshot:
    def test_spike_snapshot(self):
        closes = [1.0] * 25 + [1.01, 1.02, 1.03, 1.04, 1.06]
        volumes = [1_000.0] * 29 + [8_000.0]
        candles = make_candles(closes, volumes)
        bids = [OrderBookLevel(1.05, 10_000)]
        asks = [OrderBookLevel(1.07, 40_000)]

        snap = build_snapshot(
            "PEPEUSDT",
            candles,
            bids,
            asks,
            make_ticker(quote_volume=20_000_000.0),
            market_cap=50_000_000.0,
            captured_at=T0,
        )

        assert snap.last_price == pytest.approx(1.06)
        assert snap.price_change_5m == pytest.approx(6.0)
        assert snap.volume_multiplier == pytest.approx(8.0)
        assert snap.volume_to_market_cap == pytest.approx(0.4)
        assert snap.orderbook_ratio == pytest.approx(10_500 / 42_800)
        assert snap.rsi == 100.0
        assert snap.captured_at == T0

    def test_without_order_book(self):
        candles = make_candles([1.0] * 30)
        snap = build_snapshot("XUSDT", candles, [], [], make_ticker(), None)
        assert snap.total_bid_value is None
        assert snap.orderbook_ratio is None
        assert snap.volume_to_market_cap is None

    def test_no_candles_falls_back_to_ticker_price(self):
        snap = build_snapshot("XUSDT", [], [], [], make_ticker(), 1e9)
        assert snap.last_price == 1.0
        assert snap.volume_multiplier == 0.0
        assert snap.rsi is None
        assert not math.isnan(snap.price_change_5m)
