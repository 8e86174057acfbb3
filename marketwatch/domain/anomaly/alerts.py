"""
Domain service: alert decision for completed analyses.

Pure function over a job and thresholds. Delivery lives in the
infrastructure layer (see alert_notifier).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from marketwatch.domain.anomaly.entities import AnalysisJob, JobStatus


class AlertKind(Enum):
    """Kind of user-facing alert."""

    WARNING = "warning"
    OPPORTUNITY = "opportunity"


@dataclass(frozen=True)
class AlertThresholds:
    """Score thresholds and favorable scenario keywords."""

    warning_threshold: int = 75
    opportunity_min: int = 60
    favorable_scenarios: tuple[str, ...] = (
        "organic",
        "breakout",
        "accumulation",
        "healthy",
    )


@dataclass(frozen=True)
class AlertEvent:
    """An alert emitted for a completed analysis."""

    job_id: UUID
    symbol: str
    kind: AlertKind
    score: int
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def is_favorable(scenario: Optional[str], keywords: tuple[str, ...]) -> bool:
    """Case-insensitive substring match of the scenario against keywords."""
    if not scenario:
        return False
    lowered = scenario.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def decide_alert(
    job: AnalysisJob, thresholds: AlertThresholds | None = None
) -> Optional[AlertEvent]:
    """Decide whether a job warrants an alert.

    Only COMPLETED jobs with a final score qualify. A score at or above
    the warning threshold is a warning carrying the verdict. A score in
    ``[opportunity_min, warning_threshold)`` with a favorable scenario is
    an opportunity carrying the comment. Everything else is silent.
    """
    t = thresholds or AlertThresholds()
    if job.status is not JobStatus.COMPLETED or job.final_risk_score is None:
        return None

    score = job.final_risk_score
    if score >= t.warning_threshold:
        return AlertEvent(
            job_id=job.id,
            symbol=job.symbol,
            kind=AlertKind.WARNING,
            score=score,
            message=job.summary or "",
        )
    if score >= t.opportunity_min and is_favorable(
        job.likely_source, t.favorable_scenarios
    ):
        return AlertEvent(
            job_id=job.id,
            symbol=job.symbol,
            kind=AlertKind.OPPORTUNITY,
            score=score,
            message=job.actionable_insight or "",
        )
    return None
