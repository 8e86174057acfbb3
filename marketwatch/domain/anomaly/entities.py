"""
Domain entities for the anomaly bounded context.

Entities represent core business objects with identity and lifecycle.
They contain no framework imports and no IO operations.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


class JobStatus(Enum):
    """Lifecycle state of an analysis job."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CACHED = "CACHED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CACHED}
)

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: TERMINAL_STATUSES,
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CACHED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Return True if the lifecycle allows ``current -> target``."""
    return target in ALLOWED_TRANSITIONS[current]


def is_finite(value: Optional[float]) -> bool:
    """True for a real, finite number (None, NaN and inf are not)."""
    return value is not None and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class Candle:
    """A single 1-minute kline. Volumes are in quote-asset units."""

    open_time: datetime
    open: float
    high: float
    low: float
    close: float
    quote_volume: float


@dataclass(frozen=True)
class OrderBookLevel:
    """One price level of an order book side."""

    price: float
    quantity: float

    @property
    def value(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class TickerStats:
    """Rolling 24h statistics for one trading pair."""

    symbol: str
    last_price: float
    price_change_percent: float
    quote_volume: float


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Order book depth summary stored with a job."""

    total_bids_usd: float
    total_asks_usd: float
    is_thin: bool

    @property
    def depth_usd(self) -> float:
        return self.total_bids_usd + self.total_asks_usd

    def to_json(self) -> str:
        return json.dumps(
            {
                "total_bids_usd": self.total_bids_usd,
                "total_asks_usd": self.total_asks_usd,
                "depth_usd": self.depth_usd,
                "is_thin": self.is_thin,
            }
        )

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional["OrderBookSnapshot"]:
        if not raw:
            return None
        data = json.loads(raw)
        return cls(
            total_bids_usd=float(data.get("total_bids_usd", 0.0)),
            total_asks_usd=float(data.get("total_asks_usd", 0.0)),
            is_thin=bool(data.get("is_thin", False)),
        )


@dataclass(frozen=True)
class SocialSnapshot:
    """Social activity summary. No social source is wired; neutral by default."""

    mention_increase_percent: float = 0.0
    sentiment: str = "neutral"

    def to_json(self) -> str:
        return json.dumps(
            {
                "mention_increase_percent": self.mention_increase_percent,
                "sentiment": self.sentiment,
            }
        )


@dataclass(frozen=True)
class SymbolSnapshot:
    """Point-in-time market view of one symbol. Never persisted directly."""

    symbol: str
    last_price: float
    price_change_1m: float
    price_change_5m: float
    current_volume: float
    average_volume: float
    volume_24h: float
    captured_at: datetime
    market_cap: Optional[float] = None
    rsi: Optional[float] = None
    total_bid_value: Optional[float] = None
    total_ask_value: Optional[float] = None

    @property
    def volume_multiplier(self) -> float:
        if not self.average_volume:
            return 0.0
        return self.current_volume / self.average_volume

    @property
    def orderbook_ratio(self) -> Optional[float]:
        if self.total_bid_value is None or not self.total_ask_value:
            return None
        return self.total_bid_value / self.total_ask_value

    @property
    def volume_to_market_cap(self) -> Optional[float]:
        if not self.market_cap:
            return None
        return self.volume_24h / self.market_cap


@dataclass(frozen=True)
class AnalysisJob:
    """A durable unit of work created for one candidate symbol.

    Created PENDING by the watcher, claimed by exactly one worker,
    then finalized as COMPLETED, FAILED or CACHED.
    """

    symbol: str
    price_at_detection: float
    price_change: float
    volume_multiplier: float
    id: UUID = field(default_factory=uuid4)
    status: JobStatus = JobStatus.PENDING
    price_change_1m: Optional[float] = None
    rsi: Optional[float] = None
    market_cap: Optional[float] = None
    volume_to_market_cap: Optional[float] = None
    orderbook_json: Optional[str] = None
    social_json: Optional[str] = None
    base_risk_score: Optional[int] = None
    score_reasons: list[str] = field(default_factory=list)
    final_risk_score: Optional[int] = None
    summary: Optional[str] = None
    likely_source: Optional[str] = None
    actionable_insight: Optional[str] = None
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None
    cached_from: Optional[UUID] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def orderbook(self) -> Optional[OrderBookSnapshot]:
        return OrderBookSnapshot.from_json(self.orderbook_json)


@dataclass(frozen=True)
class JobResult:
    """Fields written when a job reaches a terminal status."""

    base_risk_score: Optional[int] = None
    score_reasons: list[str] = field(default_factory=list)
    final_risk_score: Optional[int] = None
    summary: Optional[str] = None
    likely_source: Optional[str] = None
    actionable_insight: Optional[str] = None
    cached_from: Optional[UUID] = None


@dataclass(frozen=True)
class QualitativeRequest:
    """Input sent to the qualitative analysis service."""

    symbol: str
    base_score: int
    rsi: Optional[float]
    is_thin: bool


@dataclass(frozen=True)
class QualitativeAssessment:
    """A validated qualitative assessment (from the service or the fallback)."""

    final_risk_score: int
    verdict: str
    likely_scenario: str
    short_comment: str
