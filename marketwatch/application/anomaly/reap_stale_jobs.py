"""
Use case: Fail jobs stuck in PROCESSING.

A worker that dies mid-job leaves its claim behind. Jobs claimed longer
ago than the lease timeout are moved to FAILED so nothing stays in
PROCESSING forever.
"""

import logging
from datetime import timedelta

from marketwatch.application.anomaly.dtos import ReapResult
from marketwatch.domain.anomaly.ports import JobStore

logger = logging.getLogger(__name__)


class ReapStaleJobsUseCase:
    """Moves abandoned PROCESSING jobs to FAILED."""

    def __init__(self, job_store: JobStore, timeout: timedelta) -> None:
        self._store = job_store
        self._timeout = timeout

    def execute(self) -> ReapResult:
        failed = self._store.fail_stale_processing(self._timeout)
        if failed:
            logger.info("Reaped %d stale job(s)", failed)
        return ReapResult(
            failed=failed, older_than_seconds=self._timeout.total_seconds()
        )
