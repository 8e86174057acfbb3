"""
Use case: Analysis worker tick.

Input: none (the job comes from the queue)
Output: JobOutcome for the claimed job, or None when the queue is empty
Side effects: one job moves PROCESSING -> COMPLETED | FAILED | CACHED;
              an alert may be published.

One tick handles exactly one job:
    1. Claim the oldest PENDING job.
    2. If the symbol was analysed within the dedup window, mark CACHED.
    3. Layer 2 base score from the stored snapshot fields.
    4. Layer 3 qualitative call; unusable replies use the fallback.
    5. Persist COMPLETED, then hand the job to the alert publisher.
Any unrecoverable error after the claim marks the job FAILED.
"""

import logging
from datetime import timedelta
from typing import Optional

from marketwatch.application.anomaly.dtos import JobOutcome
from marketwatch.domain.anomaly.alerts import AlertEvent, AlertThresholds, decide_alert
from marketwatch.domain.anomaly.assessment import fallback_assessment
from marketwatch.domain.anomaly.entities import (
    AnalysisJob,
    JobResult,
    JobStatus,
    QualitativeRequest,
)
from marketwatch.domain.anomaly.errors import QualitativeAnalysisUnavailableError
from marketwatch.domain.anomaly.ports import (
    AlertPublisher,
    JobStore,
    QualitativeAnalysisPort,
)
from marketwatch.domain.anomaly.risk_scoring import (
    RiskScore,
    RiskScoringEngine,
    ScoringFeatures,
)

logger = logging.getLogger(__name__)


class ProcessAnalysisJobUseCase:
    """Claims and finalizes one analysis job per call."""

    def __init__(
        self,
        job_store: JobStore,
        qualitative: QualitativeAnalysisPort,
        worker_id: str,
        scoring_engine: RiskScoringEngine | None = None,
        alert_publisher: AlertPublisher | None = None,
        alert_thresholds: AlertThresholds | None = None,
        dedup_window: timedelta = timedelta(minutes=15),
    ) -> None:
        self._store = job_store
        self._qualitative = qualitative
        self._worker_id = worker_id
        self._engine = scoring_engine or RiskScoringEngine()
        self._publisher = alert_publisher
        self._thresholds = alert_thresholds or AlertThresholds()
        self._dedup_window = dedup_window

    @property
    def worker_id(self) -> str:
        return self._worker_id

    def execute(self) -> Optional[JobOutcome]:
        """Process at most one job.

        Returns:
            The outcome for the claimed job, None if nothing was pending.
        """
        job = self._store.claim_next_pending_job(self._worker_id)
        if job is None:
            return None

        logger.info("Worker %s processing %s (%s)", self._worker_id, job.id, job.symbol)
        risk: Optional[RiskScore] = None
        try:
            cached = self._store.find_recent_completed(job.symbol, self._dedup_window)
            if cached is not None:
                return self._mark_cached(job, cached)

            risk = self._engine.score(ScoringFeatures.from_job(job))
            return self._analyze(job, risk)
        except QualitativeAnalysisUnavailableError as exc:
            logger.error("Job %s failed: %s", job.id, exc.message)
            return self._mark_failed(job, risk, exc.message)
        except Exception as exc:
            logger.exception("Job %s failed unexpectedly", job.id)
            return self._mark_failed(job, risk, str(exc) or type(exc).__name__)

    def _mark_cached(self, job: AnalysisJob, cached: AnalysisJob) -> JobOutcome:
        updated = self._store.update_result(
            job.id,
            JobStatus.CACHED,
            JobResult(
                base_risk_score=cached.base_risk_score,
                score_reasons=list(cached.score_reasons),
                final_risk_score=cached.final_risk_score,
                summary=cached.summary,
                likely_source=cached.likely_source,
                actionable_insight=cached.actionable_insight,
                cached_from=cached.id,
            ),
            owner=self._worker_id,
        )
        logger.info(
            "Job %s cached: %s analysed at %s by job %s",
            job.id,
            job.symbol,
            cached.completed_at,
            cached.id,
        )
        return JobOutcome(job=updated)

    def _analyze(self, job: AnalysisJob, risk: RiskScore) -> JobOutcome:
        book = job.orderbook
        request = QualitativeRequest(
            symbol=job.symbol,
            base_score=risk.score,
            rsi=job.rsi,
            is_thin=book.is_thin if book is not None else False,
        )

        assessment = self._qualitative.analyze(request)
        used_fallback = assessment is None
        if assessment is None:
            assessment = fallback_assessment(risk.score)

        updated = self._store.update_result(
            job.id,
            JobStatus.COMPLETED,
            JobResult(
                base_risk_score=risk.score,
                score_reasons=risk.reasons,
                final_risk_score=assessment.final_risk_score,
                summary=assessment.verdict,
                likely_source=assessment.likely_scenario,
                actionable_insight=assessment.short_comment,
            ),
            owner=self._worker_id,
        )
        logger.info(
            "Job %s completed: %s base=%d final=%d scenario=%s%s",
            job.id,
            job.symbol,
            risk.score,
            assessment.final_risk_score,
            assessment.likely_scenario,
            " (fallback)" if used_fallback else "",
        )
        return JobOutcome(
            job=updated, used_fallback=used_fallback, alert=self._dispatch(updated)
        )

    def _dispatch(self, job: AnalysisJob) -> Optional[AlertEvent]:
        alert = decide_alert(job, self._thresholds)
        if alert is None or self._publisher is None:
            return alert
        try:
            self._publisher.publish(alert)
        except Exception:
            logger.exception("Alert delivery for job %s failed", job.id)
        return alert

    def _mark_failed(
        self, job: AnalysisJob, risk: Optional[RiskScore], reason: str
    ) -> JobOutcome:
        result = JobResult(
            base_risk_score=risk.score if risk is not None else None,
            score_reasons=risk.reasons if risk is not None else [],
            summary=f"Analysis failed: {reason}",
        )
        try:
            updated = self._store.update_result(
                job.id, JobStatus.FAILED, result, owner=self._worker_id
            )
        except Exception:
            logger.exception("Could not mark job %s FAILED", job.id)
            raise
        return JobOutcome(job=updated, error=reason)
