"""
Shared fixtures and builders for the MarketWatch test suite.

Builders are plain functions so tests can tweak any field inline.
The job store fixture runs against a real SQLite file per test.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from marketwatch.domain.anomaly.entities import (
    AnalysisJob,
    Candle,
    OrderBookSnapshot,
    SocialSnapshot,
    SymbolSnapshot,
    TickerStats,
)
from marketwatch.infrastructure.anomaly.job_store import (
    SqlAlchemyJobStore,
    create_db_engine,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock injected into the store and use cases."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_candles(
    closes: list[float],
    volumes: Optional[list[float]] = None,
    start: datetime = T0,
) -> list[Candle]:
    """1m candles where each candle opens at the previous close."""
    volumes = volumes or [1_000.0] * len(closes)
    candles = []
    previous = closes[0]
    for i, (close, volume) in enumerate(zip(closes, volumes)):
        candles.append(
            Candle(
                open_time=start + timedelta(minutes=i),
                open=previous,
                high=max(previous, close),
                low=min(previous, close),
                close=close,
                quote_volume=volume,
            )
        )
        previous = close
    return candles


def make_ticker(symbol: str = "PEPEUSDT", quote_volume: float = 5_000_000.0) -> TickerStats:
    return TickerStats(
        symbol=symbol,
        last_price=1.0,
        price_change_percent=4.2,
        quote_volume=quote_volume,
    )


def make_snapshot(**overrides) -> SymbolSnapshot:
    fields = {
        "symbol": "PEPEUSDT",
        "last_price": 1.05,
        "price_change_1m": 1.0,
        "price_change_5m": 3.0,
        "current_volume": 5_000.0,
        "average_volume": 1_000.0,
        "volume_24h": 3_000_000.0,
        "captured_at": T0,
        "market_cap": 50_000_000.0,
        "rsi": 60.0,
        "total_bid_value": 100_000.0,
        "total_ask_value": 100_000.0,
    }
    fields.update(overrides)
    return SymbolSnapshot(**fields)


def make_job(symbol: str = "PEPEUSDT", **overrides) -> AnalysisJob:
    fields = {
        "symbol": symbol,
        "price_at_detection": 1.05,
        "price_change": 3.0,
        "price_change_1m": 1.0,
        "volume_multiplier": 5.0,
        "rsi": 60.0,
        "market_cap": 50_000_000.0,
        "volume_to_market_cap": 0.06,
        "orderbook_json": OrderBookSnapshot(
            total_bids_usd=100_000.0, total_asks_usd=100_000.0, is_thin=False
        ).to_json(),
        "social_json": SocialSnapshot().to_json(),
    }
    fields.update(overrides)
    return AnalysisJob(**fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'jobs.db'}"


@pytest.fixture
def store(db_url, clock) -> SqlAlchemyJobStore:
    engine = create_db_engine(db_url)
    job_store = SqlAlchemyJobStore(engine, clock=clock)
    job_store.init_schema()
    yield job_store
    engine.dispose()
