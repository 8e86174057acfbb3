"""
Domain service: Layer 1 mechanical filter.

Decides whether a symbol snapshot is worth enqueueing for analysis.
No framework imports. No IO. No side effects.

Rules (all must hold, strict comparisons):
    - 5-minute price change above the threshold (default 2%)
    - Volume multiplier above the threshold (default 3x)
    - Market cap above the floor (default $10M); an unknown cap fails
"""

from dataclasses import dataclass, field

from marketwatch.domain.anomaly.entities import SymbolSnapshot, is_finite


@dataclass(frozen=True)
class FilterThresholds:
    """Layer 1 thresholds."""

    price_change_threshold: float = 2.0
    volume_multiplier_threshold: float = 3.0
    market_cap_floor: float = 10_000_000


@dataclass(frozen=True)
class FilterResult:
    """Outcome of Layer 1 with one reason per rule."""

    passed: bool
    reasons: list[str] = field(default_factory=list)


class MechanicalFilter:
    """Cheap pre-screen applied to every scanned symbol."""

    def __init__(self, thresholds: FilterThresholds | None = None) -> None:
        self._thresholds = thresholds or FilterThresholds()

    @property
    def thresholds(self) -> FilterThresholds:
        return self._thresholds

    def evaluate(self, snapshot: SymbolSnapshot) -> FilterResult:
        """Apply the three rules to a snapshot.

        Args:
            snapshot: Current market view of the symbol.

        Returns:
            FilterResult; ``passed`` is True only when every rule holds.
        """
        t = self._thresholds
        reasons: list[str] = []

        change = snapshot.price_change_5m
        price_ok = is_finite(change) and change > t.price_change_threshold
        reasons.append(
            f"price change {change:.2f}% "
            f"{'>' if price_ok else '<='} {t.price_change_threshold:.2f}%"
        )

        multiplier = snapshot.volume_multiplier
        volume_ok = is_finite(multiplier) and multiplier > t.volume_multiplier_threshold
        reasons.append(
            f"volume {multiplier:.2f}x "
            f"{'>' if volume_ok else '<='} {t.volume_multiplier_threshold:.2f}x"
        )

        cap = snapshot.market_cap
        if cap is None:
            cap_ok = False
            reasons.append("market cap unknown")
        else:
            cap_ok = is_finite(cap) and cap > t.market_cap_floor
            reasons.append(
                f"market cap ${cap:,.0f} "
                f"{'>' if cap_ok else '<='} ${t.market_cap_floor:,.0f}"
            )

        return FilterResult(passed=price_ok and volume_ok and cap_ok, reasons=reasons)
