"""
Domain service: Layer 2 deterministic risk scoring.

Pure business logic. No framework imports. No IO. No side effects.

Additive rules (each fires at most once):
    - RSI above the overbought level (overbought)
    - Bid/ask value ratio below the thinness level (no support)
    - 24h volume / market cap above the overheat level (overheated)
    - 1-minute price change above the panic-buy level (panic buy)

A missing, NaN or infinite feature never fires its rule. The sum is
clamped to [0, 100] whatever the weights.
"""

from dataclasses import dataclass, field
from typing import Optional

from marketwatch.domain.anomaly.entities import AnalysisJob, SymbolSnapshot, is_finite

MIN_SCORE = 0
MAX_SCORE = 100


def clamp_score(value: float) -> int:
    """Round and clamp a score into [0, 100]."""
    return int(max(MIN_SCORE, min(MAX_SCORE, round(value))))


@dataclass(frozen=True)
class ScoringConfig:
    """Layer 2 thresholds and weights."""

    rsi_overbought: float = 85.0
    rsi_weight: int = 20
    orderbook_thin_ratio: float = 0.33
    orderbook_weight: int = 30
    volume_to_cap_threshold: float = 0.2
    volume_to_cap_weight: int = 15
    panic_buy_threshold: float = 5.0
    panic_buy_weight: int = 20


@dataclass(frozen=True)
class ScoringFeatures:
    """The raw values Layer 2 reads. Any of them may be missing."""

    rsi: Optional[float] = None
    orderbook_ratio: Optional[float] = None
    volume_to_market_cap: Optional[float] = None
    price_change_1m: Optional[float] = None
    price_change_5m: Optional[float] = None
    volume_multiplier: Optional[float] = None

    @classmethod
    def from_snapshot(cls, snapshot: SymbolSnapshot) -> "ScoringFeatures":
        return cls(
            rsi=snapshot.rsi,
            orderbook_ratio=snapshot.orderbook_ratio,
            volume_to_market_cap=snapshot.volume_to_market_cap,
            price_change_1m=snapshot.price_change_1m,
            price_change_5m=snapshot.price_change_5m,
            volume_multiplier=snapshot.volume_multiplier,
        )

    @classmethod
    def from_job(cls, job: AnalysisJob) -> "ScoringFeatures":
        """Rebuild the features from the fields stored on a job."""
        ratio: Optional[float] = None
        book = job.orderbook
        if book is not None and book.total_asks_usd:
            ratio = book.total_bids_usd / book.total_asks_usd
        return cls(
            rsi=job.rsi,
            orderbook_ratio=ratio,
            volume_to_market_cap=job.volume_to_market_cap,
            price_change_1m=job.price_change_1m,
            price_change_5m=job.price_change,
            volume_multiplier=job.volume_multiplier,
        )

    def as_dict(self) -> dict[str, Optional[float]]:
        return {
            "rsi": self.rsi,
            "orderbook_ratio": self.orderbook_ratio,
            "volume_to_market_cap": self.volume_to_market_cap,
            "price_change_1m": self.price_change_1m,
            "price_change_5m": self.price_change_5m,
            "volume_multiplier": self.volume_multiplier,
        }


@dataclass(frozen=True)
class RiskScore:
    """Base risk score with the conditions that fired."""

    score: int
    reasons: list[str] = field(default_factory=list)
    features: dict[str, Optional[float]] = field(default_factory=dict)


class RiskScoringEngine:
    """Computes the deterministic base risk score for a candidate."""

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or ScoringConfig()

    def score(self, features: ScoringFeatures) -> RiskScore:
        """Score a candidate.

        Args:
            features: Raw feature values; missing ones are skipped.

        Returns:
            RiskScore with an integer score in [0, 100].
        """
        c = self._config
        total = 0
        reasons: list[str] = []

        if is_finite(features.rsi) and features.rsi > c.rsi_overbought:
            total += c.rsi_weight
            reasons.append(
                f"RSI ({features.rsi:.2f}) > {c.rsi_overbought:g} (Overbought)"
            )

        ratio = features.orderbook_ratio
        if is_finite(ratio) and ratio < c.orderbook_thin_ratio:
            total += c.orderbook_weight
            reasons.append(
                f"Orderbook imbalance ({ratio:.3f}) < {c.orderbook_thin_ratio:g}"
            )

        vol_cap = features.volume_to_market_cap
        if is_finite(vol_cap) and vol_cap > c.volume_to_cap_threshold:
            total += c.volume_to_cap_weight
            reasons.append(
                f"Volume/Market Cap ({vol_cap:.3f}) > "
                f"{c.volume_to_cap_threshold:g} (Overheated)"
            )

        change = features.price_change_1m
        if is_finite(change) and change > c.panic_buy_threshold:
            total += c.panic_buy_weight
            reasons.append(
                f"1m price change ({change:.2f}%) > "
                f"{c.panic_buy_threshold:g}% (Panic buy)"
            )

        return RiskScore(
            score=clamp_score(total),
            reasons=reasons,
            features=features.as_dict(),
        )
