"""
Pydantic schemas for the anomaly API.

These schemas define the API contract.
No business logic belongs here.
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from marketwatch.application.anomaly.dtos import JobOutcome, ScanCycleResult
from marketwatch.domain.anomaly.alerts import AlertEvent
from marketwatch.domain.anomaly.entities import AnalysisJob

SYMBOL_PATTERN = r"^[A-Za-z0-9]+$"
SYMBOL_MAX_LEN = 20
LIST_LIMIT_MAX = 200


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    job_store: str
    pending_jobs: Optional[int] = None


class ErrorResponse(BaseModel):
    """Standard error response returned by all error handlers."""

    error: str
    detail: str | None = None


class AlertItem(BaseModel):
    """Alert decision attached to a completed analysis."""

    kind: str
    score: int
    message: str

    @classmethod
    def from_event(cls, event: Optional[AlertEvent]) -> Optional["AlertItem"]:
        if event is None:
            return None
        return cls(kind=event.kind.value, score=event.score, message=event.message)


class AnalysisItem(BaseModel):
    """A single analysis job as exposed over HTTP."""

    id: UUID
    symbol: str
    status: str
    price_at_detection: float
    price_change: float
    price_change_1m: Optional[float] = None
    volume_multiplier: float
    rsi: Optional[float] = None
    market_cap: Optional[float] = None
    volume_to_market_cap: Optional[float] = None
    orderbook: Optional[dict[str, Any]] = None
    base_risk_score: Optional[int] = None
    score_reasons: list[str] = Field(default_factory=list)
    final_risk_score: Optional[int] = None
    summary: Optional[str] = None
    likely_source: Optional[str] = None
    actionable_insight: Optional[str] = None
    cached_from: Optional[UUID] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    alert: Optional[AlertItem] = None

    @classmethod
    def from_job(
        cls, job: AnalysisJob, alert: Optional[AlertEvent] = None
    ) -> "AnalysisItem":
        return cls(
            id=job.id,
            symbol=job.symbol,
            status=job.status.value,
            price_at_detection=job.price_at_detection,
            price_change=job.price_change,
            price_change_1m=job.price_change_1m,
            volume_multiplier=job.volume_multiplier,
            rsi=job.rsi,
            market_cap=job.market_cap,
            volume_to_market_cap=job.volume_to_market_cap,
            orderbook=json.loads(job.orderbook_json) if job.orderbook_json else None,
            base_risk_score=job.base_risk_score,
            score_reasons=list(job.score_reasons),
            final_risk_score=job.final_risk_score,
            summary=job.summary,
            likely_source=job.likely_source,
            actionable_insight=job.actionable_insight,
            cached_from=job.cached_from,
            created_at=job.created_at,
            completed_at=job.completed_at,
            alert=AlertItem.from_event(alert),
        )


class AnalysisListResponse(BaseModel):
    """Response schema for the completed-analyses listing."""

    analyses: list[AnalysisItem]


class QueueStatusResponse(BaseModel):
    """Job counts per status."""

    counts: dict[str, int]
    total: int


class ScanCycleResponse(BaseModel):
    """Counters of one market watcher cycle."""

    started_at: datetime
    finished_at: datetime
    scanned: int
    candidates: int
    enqueued: int
    duplicates: int
    failures: int
    enqueued_job_ids: list[UUID]
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: ScanCycleResult) -> "ScanCycleResponse":
        return cls(
            started_at=result.started_at,
            finished_at=result.finished_at,
            scanned=result.scanned,
            candidates=result.candidates,
            enqueued=result.enqueued,
            duplicates=result.duplicates,
            failures=result.failures,
            enqueued_job_ids=list(result.enqueued_job_ids),
            error=result.error,
        )


class WorkerTickResponse(BaseModel):
    """Outcome of one worker tick; ``job`` is None when the queue was empty."""

    processed: bool
    job: Optional[AnalysisItem] = None
    used_fallback: bool = False
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: Optional[JobOutcome]) -> "WorkerTickResponse":
        if outcome is None:
            return cls(processed=False)
        return cls(
            processed=True,
            job=AnalysisItem.from_job(outcome.job, outcome.alert),
            used_fallback=outcome.used_fallback,
            error=outcome.error,
        )


class RuntimeStatusResponse(BaseModel):
    """Scheduler state and recent task history."""

    running: bool
    jobs: list[dict[str, Any]] = Field(default_factory=list)
    recent_tasks: list[dict[str, Any]] = Field(default_factory=list)
    note: Optional[str] = None
