"""
Dependency injection for the anomaly bounded context.

Provides FastAPI dependency functions and builders that wire
infrastructure adapters into use cases via constructor injection.
This is the composition root shared by the API and the CLI.
"""

import logging
import os
import socket
from functools import lru_cache
from typing import Optional
from uuid import uuid4

from sqlalchemy.engine import Engine

from marketwatch.application.anomaly.get_analyses import (
    GetAnalysisUseCase,
    GetQueueStatusUseCase,
    ListAnalysesUseCase,
)
from marketwatch.application.anomaly.process_analysis_job import (
    ProcessAnalysisJobUseCase,
)
from marketwatch.application.anomaly.reap_stale_jobs import ReapStaleJobsUseCase
from marketwatch.application.anomaly.scan_market import (
    ScanMarketUseCase,
    WatcherSettings,
)
from marketwatch.core.config import settings
from marketwatch.domain.anomaly.mechanical_filter import MechanicalFilter
from marketwatch.domain.anomaly.ports import (
    JobStore,
    MarketCapPort,
    MarketDataPort,
    QualitativeAnalysisPort,
)
from marketwatch.domain.anomaly.risk_scoring import RiskScoringEngine
from marketwatch.infrastructure.anomaly.alert_notifier import AlertNotifier
from marketwatch.infrastructure.anomaly.binance_market_data import (
    BinanceMarketDataAdapter,
)
from marketwatch.infrastructure.anomaly.job_store import (
    SqlAlchemyJobStore,
    create_db_engine,
)
from marketwatch.infrastructure.anomaly.llm_analysis_adapter import (
    LLMAnalysisAdapter,
    OfflineAnalysisAdapter,
)
from marketwatch.infrastructure.anomaly.market_cap_adapter import (
    CoinGeckoMarketCapAdapter,
)
from marketwatch.realtime.scheduler import PipelineScheduler

logger = logging.getLogger(__name__)


# ── Shared adapters (one per process) ────────────────────────────


@lru_cache(maxsize=1)
def get_db_engine() -> Engine:
    """Build a SQLAlchemy engine from application settings."""
    return create_db_engine(settings.database_url)


@lru_cache(maxsize=1)
def get_job_store() -> JobStore:
    return SqlAlchemyJobStore(get_db_engine())


@lru_cache(maxsize=1)
def get_market_data() -> MarketDataPort:
    return BinanceMarketDataAdapter(
        base_url=settings.market_data_base_url,
        timeout=settings.http_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_market_caps() -> MarketCapPort:
    return CoinGeckoMarketCapAdapter(
        base_url=settings.market_cap_base_url,
        quote_asset=settings.quote_asset,
        ttl_seconds=settings.market_cap_ttl_seconds,
        retry_seconds=settings.market_cap_retry_seconds,
        timeout=settings.http_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_qualitative_adapter() -> QualitativeAnalysisPort:
    """LLM adapter, or the offline adapter when no API key is configured."""
    if not settings.llm_api_key:
        logger.warning("No LLM API key configured; every analysis uses the fallback.")
        return OfflineAnalysisAdapter()
    return LLMAnalysisAdapter(
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout_seconds,
        max_retries=settings.llm_max_retries,
        backoff_factor=settings.llm_backoff_factor,
    )


@lru_cache(maxsize=1)
def get_alert_notifier() -> AlertNotifier:
    return AlertNotifier(
        webhook_urls=settings.webhook_urls,
        webhook_timeout=settings.webhook_timeout_seconds,
    )


def worker_id_for(index: int) -> str:
    """Identity recorded on claimed jobs: host, pid and loop index."""
    return f"{socket.gethostname()}:{os.getpid()}:{index}"


def api_worker_id() -> str:
    """Identity for one API-triggered tick; unique per request."""
    return f"api:{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


# ── Use case builders ────────────────────────────────────────────


def build_scan_market_use_case() -> ScanMarketUseCase:
    return ScanMarketUseCase(
        market_data=get_market_data(),
        market_caps=get_market_caps(),
        job_store=get_job_store(),
        mechanical_filter=MechanicalFilter(settings.filter_thresholds()),
        config=WatcherSettings(
            tracked_symbols=tuple(settings.tracked_symbols),
            tracked_symbol_count=settings.tracked_symbol_count,
            quote_asset=settings.quote_asset,
            fetch_concurrency=settings.fetch_concurrency,
            dedup_window=settings.dedup_window,
            candle_limit=settings.candle_limit,
            average_volume_period=settings.average_volume_period,
            rsi_window=settings.rsi_window,
            orderbook_band=settings.orderbook_band,
            orderbook_depth_limit=settings.orderbook_depth_limit,
            orderbook_thin_ratio=settings.orderbook_thin_ratio,
        ),
    )


def build_process_job_use_case(worker_id: str) -> ProcessAnalysisJobUseCase:
    return ProcessAnalysisJobUseCase(
        job_store=get_job_store(),
        qualitative=get_qualitative_adapter(),
        worker_id=worker_id,
        scoring_engine=RiskScoringEngine(settings.scoring_config()),
        alert_publisher=get_alert_notifier(),
        alert_thresholds=settings.alert_thresholds(),
        dedup_window=settings.dedup_window,
    )


def build_reap_stale_jobs_use_case() -> ReapStaleJobsUseCase:
    return ReapStaleJobsUseCase(get_job_store(), settings.stale_job_timeout)


def build_pipeline_scheduler() -> PipelineScheduler:
    """Wire the watcher, ``worker_instances`` workers and the reaper."""
    return PipelineScheduler(
        scan_use_case=build_scan_market_use_case(),
        worker_use_cases=[
            build_process_job_use_case(worker_id_for(i))
            for i in range(settings.worker_instances)
        ],
        reaper_use_case=build_reap_stale_jobs_use_case(),
        scan_interval_seconds=settings.scan_interval_seconds,
        worker_poll_interval_seconds=settings.worker_poll_interval_seconds,
        reaper_interval_seconds=settings.reaper_interval_seconds,
    )


# ── FastAPI dependencies ─────────────────────────────────────────

# Set by the app lifespan when the loops run inside the API process.
_scheduler: Optional[PipelineScheduler] = None


def set_pipeline_scheduler(scheduler: Optional[PipelineScheduler]) -> None:
    global _scheduler
    _scheduler = scheduler


def get_pipeline_scheduler() -> Optional[PipelineScheduler]:
    return _scheduler


def get_list_analyses_use_case() -> ListAnalysesUseCase:
    return ListAnalysesUseCase(get_job_store(), settings.alert_thresholds())


def get_analysis_use_case() -> GetAnalysisUseCase:
    return GetAnalysisUseCase(get_job_store(), settings.alert_thresholds())


def get_queue_status_use_case() -> GetQueueStatusUseCase:
    return GetQueueStatusUseCase(get_job_store())


def get_scan_market_use_case() -> ScanMarketUseCase:
    return build_scan_market_use_case()


def get_process_job_use_case() -> ProcessAnalysisJobUseCase:
    return build_process_job_use_case(api_worker_id())
