"""
Tests for the Layer 2 risk scoring engine and the fallback assessment.

Includes Hypothesis properties for the [0, 100] score range.
"""

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from marketwatch.domain.anomaly.assessment import (
    FALLBACK_COMMENT,
    FALLBACK_SCENARIO,
    fallback_assessment,
    verdict_for,
)
from marketwatch.domain.anomaly.entities import OrderBookSnapshot
from marketwatch.domain.anomaly.risk_scoring import (
    RiskScoringEngine,
    ScoringConfig,
    ScoringFeatures,
    clamp_score,
)
from tests.conftest import make_job, make_snapshot

maybe_float = st.one_of(
    st.none(), st.floats(allow_nan=True, allow_infinity=True)
)


class TestRiskScoringEngine:
    def test_overheated_thin_book_pump(self):
        """RSI 90, ratio 0.2, vol/cap 0.1, 1m change 7% -> 20 + 30 + 20."""
        features = ScoringFeatures(
            rsi=90.0,
            orderbook_ratio=0.2,
            volume_to_market_cap=0.1,
            price_change_1m=7.0,
        )
        result = RiskScoringEngine().score(features)
        assert result.score == 70
        assert len(result.reasons) == 3
        assert result.reasons[0].startswith("RSI (90.00) > 85")
        assert "Orderbook imbalance" in result.reasons[1]
        assert "Panic buy" in result.reasons[2]

    def test_every_rule_fires(self):
        features = ScoringFeatures(
            rsi=95.0,
            orderbook_ratio=0.1,
            volume_to_market_cap=0.5,
            price_change_1m=9.0,
        )
        result = RiskScoringEngine().score(features)
        assert result.score == 85
        assert any("Overheated" in r for r in result.reasons)

    def test_nothing_fires(self):
        result = RiskScoringEngine().score(ScoringFeatures(rsi=50.0))
        assert result.score == 0
        assert result.reasons == []

    def test_missing_features_never_fire(self):
        result = RiskScoringEngine().score(ScoringFeatures())
        assert result.score == 0

    def test_nan_and_inf_are_missing(self):
        features = ScoringFeatures(
            rsi=math.nan, orderbook_ratio=math.inf, price_change_1m=-math.inf
        )
        assert RiskScoringEngine().score(features).score == 0

    def test_thresholds_are_strict(self):
        features = ScoringFeatures(
            rsi=85.0,
            orderbook_ratio=0.33,
            volume_to_market_cap=0.2,
            price_change_1m=5.0,
        )
        assert RiskScoringEngine().score(features).score == 0

    def test_features_recorded(self):
        features = ScoringFeatures(rsi=90.0, price_change_5m=3.0)
        result = RiskScoringEngine().score(features)
        assert result.features["rsi"] == 90.0
        assert result.features["price_change_5m"] == 3.0
        assert result.features["orderbook_ratio"] is None

    def test_large_weights_are_clamped(self):
        config = ScoringConfig(rsi_weight=500, orderbook_weight=500)
        features = ScoringFeatures(rsi=99.0, orderbook_ratio=0.01)
        assert RiskScoringEngine(config).score(features).score == 100

    def test_negative_weights_are_clamped(self):
        config = ScoringConfig(rsi_weight=-80)
        assert RiskScoringEngine(config).score(ScoringFeatures(rsi=99.0)).score == 0

    @given(
        rsi=maybe_float,
        ratio=maybe_float,
        vol_cap=maybe_float,
        change=maybe_float,
        weights=st.lists(st.integers(-1_000, 1_000), min_size=4, max_size=4),
    )
    def test_score_always_in_range(self, rsi, ratio, vol_cap, change, weights):
        config = ScoringConfig(
            rsi_weight=weights[0],
            orderbook_weight=weights[1],
            volume_to_cap_weight=weights[2],
            panic_buy_weight=weights[3],
        )
        features = ScoringFeatures(
            rsi=rsi,
            orderbook_ratio=ratio,
            volume_to_market_cap=vol_cap,
            price_change_1m=change,
        )
        score = RiskScoringEngine(config).score(features).score
        assert isinstance(score, int)
        assert 0 <= score <= 100


class TestScoringFeatures:
    def test_from_snapshot(self):
        snap = make_snapshot(total_bid_value=20_000.0, total_ask_value=100_000.0)
        features = ScoringFeatures.from_snapshot(snap)
        assert features.orderbook_ratio == pytest.approx(0.2)
        assert features.volume_multiplier == pytest.approx(5.0)
        assert features.volume_to_market_cap == pytest.approx(0.06)

    def test_from_job_rebuilds_ratio(self):
        book = OrderBookSnapshot(total_bids_usd=10.0, total_asks_usd=40.0, is_thin=True)
        job = make_job(orderbook_json=book.to_json(), rsi=88.0)
        features = ScoringFeatures.from_job(job)
        assert features.orderbook_ratio == pytest.approx(0.25)
        assert features.rsi == 88.0
        assert features.price_change_5m == job.price_change

    def test_from_job_without_order_book(self):
        features = ScoringFeatures.from_job(make_job(orderbook_json=None))
        assert features.orderbook_ratio is None


class TestFallbackAssessment:
    @pytest.mark.parametrize(
        "score, fragment",
        [(0, "Low"), (39, "Low"), (40, "Moderate"), (69, "Moderate"),
         (70, "High"), (84, "High"), (85, "Critical"), (100, "Critical")],
    )
    def test_verdict_buckets(self, score, fragment):
        assert verdict_for(score).startswith(fragment)

    def test_fallback_keeps_base_score(self):
        assessment = fallback_assessment(70)
        assert assessment.final_risk_score == 70
        assert assessment.likely_scenario == FALLBACK_SCENARIO
        assert assessment.short_comment == FALLBACK_COMMENT

    def test_clamp_score(self):
        assert clamp_score(-5) == 0
        assert clamp_score(150) == 100
        assert clamp_score(42.6) == 43
