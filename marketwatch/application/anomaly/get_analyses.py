"""
Use cases: Read-side queries over analysis jobs.

Input: ListAnalysesQuery / job id / nothing
Output: AnalysisRecord list, a single AnalysisRecord, QueueStatus
Side effects: None (read-only queries).
Failure cases: JobNotFoundError when a completed analysis does not exist.
"""

import logging
from uuid import UUID

from marketwatch.application.anomaly.dtos import (
    AnalysisRecord,
    ListAnalysesQuery,
    QueueStatus,
)
from marketwatch.domain.anomaly.alerts import AlertThresholds, decide_alert
from marketwatch.domain.anomaly.entities import JobStatus
from marketwatch.domain.anomaly.errors import JobNotFoundError
from marketwatch.domain.anomaly.ports import JobStore

logger = logging.getLogger(__name__)


class ListAnalysesUseCase:
    """Lists COMPLETED analyses newest first, each with its alert decision."""

    def __init__(
        self, job_store: JobStore, thresholds: AlertThresholds | None = None
    ) -> None:
        self._store = job_store
        self._thresholds = thresholds or AlertThresholds()

    def execute(self, query: ListAnalysesQuery) -> list[AnalysisRecord]:
        """Run the query.

        Args:
            query: Optional symbol filter and a result limit.

        Returns:
            Completed analyses, newest first.
        """
        logger.debug(
            "Listing analyses: symbol=%s, limit=%d", query.symbol, query.limit
        )
        jobs = self._store.list_recent(
            status=JobStatus.COMPLETED, symbol=query.symbol, limit=query.limit
        )
        return [
            AnalysisRecord(job=job, alert=decide_alert(job, self._thresholds))
            for job in jobs
        ]


class GetAnalysisUseCase:
    """Fetches one COMPLETED analysis."""

    def __init__(
        self, job_store: JobStore, thresholds: AlertThresholds | None = None
    ) -> None:
        self._store = job_store
        self._thresholds = thresholds or AlertThresholds()

    def execute(self, job_id: UUID) -> AnalysisRecord:
        """Return the analysis or raise JobNotFoundError.

        Jobs that exist but are not COMPLETED are reported as not found.
        """
        job = self._store.get(job_id)
        if job is None or job.status is not JobStatus.COMPLETED:
            raise JobNotFoundError(str(job_id))
        return AnalysisRecord(job=job, alert=decide_alert(job, self._thresholds))


class GetQueueStatusUseCase:
    """Counts jobs per status."""

    def __init__(self, job_store: JobStore) -> None:
        self._store = job_store

    def execute(self) -> QueueStatus:
        counts = self._store.count_by_status()
        return QueueStatus(counts={status.value: n for status, n in counts.items()})
