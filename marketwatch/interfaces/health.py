"""
Health check router.

Liveness plus a job-store check. An unreachable store reports "degraded"
with a 200 status.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from marketwatch.application.anomaly.get_analyses import GetQueueStatusUseCase
from marketwatch.core.config import settings
from marketwatch.domain.anomaly.entities import JobStatus
from marketwatch.interfaces.anomaly.dependencies import get_queue_status_use_case
from marketwatch.interfaces.anomaly.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns service status, version and the pending queue depth.",
)
def health_check(
    use_case: GetQueueStatusUseCase = Depends(get_queue_status_use_case),
) -> HealthResponse:
    try:
        queue = use_case.execute()
    except SQLAlchemyError as exc:
        logger.warning("Health check could not reach the job store: %s", exc)
        return HealthResponse(
            status="degraded", version=settings.version, job_store="unavailable"
        )
    return HealthResponse(
        status="ok",
        version=settings.version,
        job_store="ok",
        pending_jobs=queue.counts.get(JobStatus.PENDING.value, 0),
    )
