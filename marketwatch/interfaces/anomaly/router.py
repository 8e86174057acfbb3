"""
FastAPI router for the anomaly bounded context.

All routes delegate to use cases. No business logic here.
Error mapping is handled by centralized error handlers.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from marketwatch.application.anomaly.dtos import ListAnalysesQuery
from marketwatch.application.anomaly.get_analyses import (
    GetAnalysisUseCase,
    GetQueueStatusUseCase,
    ListAnalysesUseCase,
)
from marketwatch.application.anomaly.process_analysis_job import (
    ProcessAnalysisJobUseCase,
)
from marketwatch.application.anomaly.scan_market import ScanMarketUseCase
from marketwatch.interfaces.anomaly.dependencies import (
    get_analysis_use_case,
    get_list_analyses_use_case,
    get_pipeline_scheduler,
    get_process_job_use_case,
    get_queue_status_use_case,
    get_scan_market_use_case,
)
from marketwatch.interfaces.anomaly.schemas import (
    LIST_LIMIT_MAX,
    SYMBOL_MAX_LEN,
    SYMBOL_PATTERN,
    AnalysisItem,
    AnalysisListResponse,
    ErrorResponse,
    QueueStatusResponse,
    RuntimeStatusResponse,
    ScanCycleResponse,
    WorkerTickResponse,
)
from marketwatch.realtime.scheduler import PipelineScheduler
from marketwatch.shared.security.rate_limiting import HEAVY_RATE_LIMIT, limiter

router = APIRouter(prefix="/anomalies", tags=["anomalies"])


@router.get(
    "/analyses",
    response_model=AnalysisListResponse,
    responses={422: {"model": ErrorResponse}},
    summary="List completed analyses",
    description="Completed analyses, newest first, each with its alert decision.",
)
def list_analyses(
    symbol: Annotated[
        Optional[str],
        Query(max_length=SYMBOL_MAX_LEN, pattern=SYMBOL_PATTERN),
    ] = None,
    limit: Annotated[int, Query(ge=1, le=LIST_LIMIT_MAX)] = 50,
    use_case: ListAnalysesUseCase = Depends(get_list_analyses_use_case),
) -> AnalysisListResponse:
    records = use_case.execute(ListAnalysesQuery(symbol=symbol, limit=limit))
    return AnalysisListResponse(
        analyses=[AnalysisItem.from_job(r.job, r.alert) for r in records]
    )


@router.get(
    "/analyses/{job_id}",
    response_model=AnalysisItem,
    responses={404: {"model": ErrorResponse}},
    summary="Get one completed analysis",
)
def get_analysis(
    job_id: UUID,
    use_case: GetAnalysisUseCase = Depends(get_analysis_use_case),
) -> AnalysisItem:
    record = use_case.execute(job_id)
    return AnalysisItem.from_job(record.job, record.alert)


@router.get(
    "/queue",
    response_model=QueueStatusResponse,
    summary="Job counts per status",
)
def queue_status(
    use_case: GetQueueStatusUseCase = Depends(get_queue_status_use_case),
) -> QueueStatusResponse:
    status = use_case.execute()
    return QueueStatusResponse(counts=status.counts, total=status.total)


@router.post(
    "/scan",
    response_model=ScanCycleResponse,
    responses={429: {"model": ErrorResponse}},
    summary="Run one market watcher cycle",
)
@limiter.limit(HEAVY_RATE_LIMIT)
def trigger_scan(
    request: Request,
    use_case: ScanMarketUseCase = Depends(get_scan_market_use_case),
) -> ScanCycleResponse:
    return ScanCycleResponse.from_result(use_case.run_cycle())


@router.post(
    "/worker/tick",
    response_model=WorkerTickResponse,
    responses={429: {"model": ErrorResponse}},
    summary="Process at most one pending job",
)
@limiter.limit(HEAVY_RATE_LIMIT)
def trigger_worker_tick(
    request: Request,
    use_case: ProcessAnalysisJobUseCase = Depends(get_process_job_use_case),
) -> WorkerTickResponse:
    return WorkerTickResponse.from_outcome(use_case.execute())


@router.get(
    "/runtime",
    response_model=RuntimeStatusResponse,
    summary="Background loop status",
    description="Scheduler state and recent task history of the in-process loops.",
)
def runtime_status(
    scheduler: Optional[PipelineScheduler] = Depends(get_pipeline_scheduler),
) -> RuntimeStatusResponse:
    if scheduler is None:
        return RuntimeStatusResponse(
            running=False, note="Pipeline loops are not running in this process."
        )
    return RuntimeStatusResponse(**scheduler.get_status())
