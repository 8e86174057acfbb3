"""
Data Transfer Objects for the anomaly application layer.

DTOs carry data between the interface and application layers.
They are plain dataclasses with no behavior.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from marketwatch.domain.anomaly.alerts import AlertEvent
from marketwatch.domain.anomaly.entities import AnalysisJob, JobStatus


@dataclass(frozen=True)
class ScanCycleResult:
    """Output DTO for one market watcher cycle.

    Attributes:
        started_at: Cycle start (UTC).
        finished_at: Cycle end (UTC).
        scanned: Symbols whose snapshot was fetched successfully.
        candidates: Symbols that passed Layer 1.
        enqueued: New PENDING jobs written.
        duplicates: Candidates skipped because a recent job exists.
        failures: Symbols whose fetch failed.
        enqueued_job_ids: Ids of the jobs written.
        error: Set when the whole cycle was aborted (universe unavailable).
    """

    started_at: datetime
    finished_at: datetime
    scanned: int = 0
    candidates: int = 0
    enqueued: int = 0
    duplicates: int = 0
    failures: int = 0
    enqueued_job_ids: list[UUID] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


@dataclass(frozen=True)
class JobOutcome:
    """Output DTO for one analysis worker tick that claimed a job.

    Attributes:
        job: The job as persisted in its terminal state.
        used_fallback: True when the deterministic fallback produced the result.
        alert: The alert emitted for the job, if any.
        error: Failure reason for FAILED jobs.
    """

    job: AnalysisJob
    used_fallback: bool = False
    alert: Optional[AlertEvent] = None
    error: Optional[str] = None

    @property
    def status(self) -> JobStatus:
        return self.job.status


@dataclass(frozen=True)
class ListAnalysesQuery:
    """Input DTO for listing completed analyses.

    Attributes:
        symbol: Optional trading pair filter.
        limit: Maximum number of analyses to return.
    """

    symbol: Optional[str] = None
    limit: int = 50


@dataclass(frozen=True)
class AnalysisRecord:
    """Output DTO: a completed analysis with its alert decision."""

    job: AnalysisJob
    alert: Optional[AlertEvent] = None


@dataclass(frozen=True)
class QueueStatus:
    """Output DTO: job counts per status."""

    counts: dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.counts.values())


@dataclass(frozen=True)
class ReapResult:
    """Output DTO for one stale-job reaper run."""

    failed: int
    older_than_seconds: float
