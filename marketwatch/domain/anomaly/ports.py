"""
Port interfaces (ABCs) for the anomaly bounded context.

Ports define the contracts that the domain requires from the outside world.
Infrastructure adapters implement these interfaces.
The domain layer never depends on concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional
from uuid import UUID

from marketwatch.domain.anomaly.alerts import AlertEvent
from marketwatch.domain.anomaly.entities import (
    AnalysisJob,
    Candle,
    JobResult,
    JobStatus,
    OrderBookLevel,
    QualitativeAssessment,
    QualitativeRequest,
    TickerStats,
)


class MarketDataPort(ABC):
    """Port for pulling raw market data from an exchange.

    Every method raises MarketDataUnavailableError on a transport
    failure or an unusable response.
    """

    @abstractmethod
    def list_top_symbols(self, quote_asset: str, limit: int) -> list[str]:
        """Return the most traded pairs for a quote asset, by 24h quote volume."""
        raise NotImplementedError

    @abstractmethod
    def get_ticker(self, symbol: str) -> TickerStats:
        """Return 24h rolling statistics for a pair."""
        raise NotImplementedError

    @abstractmethod
    def get_candles(self, symbol: str, limit: int) -> list[Candle]:
        """Return the most recent 1-minute candles, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def get_order_book(
        self, symbol: str, limit: int
    ) -> tuple[list[OrderBookLevel], list[OrderBookLevel]]:
        """Return ``(bids, asks)`` for a pair."""
        raise NotImplementedError


class MarketCapPort(ABC):
    """Port for market capitalization lookups."""

    @abstractmethod
    def get_market_cap(self, symbol: str) -> Optional[float]:
        """Return the USD market cap for a trading pair, None if unknown."""
        raise NotImplementedError


class JobStore(ABC):
    """Port for the durable analysis job queue.

    Implementations must make ``claim_next_pending_job`` a single atomic
    operation at the storage layer so that concurrent claimers never
    receive the same job.
    """

    @abstractmethod
    def init_schema(self) -> None:
        """Create the job table and indexes if they do not exist."""
        raise NotImplementedError

    @abstractmethod
    def insert_pending(self, job: AnalysisJob) -> AnalysisJob:
        """Persist a new PENDING job and return it with its timestamps."""
        raise NotImplementedError

    @abstractmethod
    def claim_next_pending_job(self, worker_id: str) -> Optional[AnalysisJob]:
        """Atomically move the oldest PENDING job to PROCESSING and return it."""
        raise NotImplementedError

    @abstractmethod
    def update_result(
        self,
        job_id: UUID,
        status: JobStatus,
        result: JobResult,
        owner: Optional[str] = None,
    ) -> AnalysisJob:
        """Finalize a PROCESSING job.

        Args:
            job_id: Job to finalize.
            status: Terminal status to set.
            result: Fields to persist alongside the status.
            owner: When given, the job must be claimed by this worker.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidStatusTransitionError: If the job is not PROCESSING
                (or not owned by ``owner``) or ``status`` is not terminal.
            InvalidRiskScoreError: If a score falls outside [0, 100].
        """
        raise NotImplementedError

    @abstractmethod
    def find_recent_completed(
        self, symbol: str, window: timedelta
    ) -> Optional[AnalysisJob]:
        """Return the newest COMPLETED job for a symbol finished within the window."""
        raise NotImplementedError

    @abstractmethod
    def find_recent_job(
        self, symbol: str, window: timedelta
    ) -> Optional[AnalysisJob]:
        """Return the newest non-FAILED job for a symbol created within the window."""
        raise NotImplementedError

    @abstractmethod
    def get(self, job_id: UUID) -> Optional[AnalysisJob]:
        """Return a job by id."""
        raise NotImplementedError

    @abstractmethod
    def list_recent(
        self,
        status: Optional[JobStatus] = None,
        symbol: Optional[str] = None,
        limit: int = 50,
    ) -> list[AnalysisJob]:
        """Return jobs newest first, optionally filtered."""
        raise NotImplementedError

    @abstractmethod
    def count_by_status(self) -> dict[JobStatus, int]:
        """Return the number of jobs in each status."""
        raise NotImplementedError

    @abstractmethod
    def fail_stale_processing(self, older_than: timedelta) -> int:
        """Move jobs claimed longer ago than ``older_than`` to FAILED.

        Returns:
            Number of jobs failed.
        """
        raise NotImplementedError


class QualitativeAnalysisPort(ABC):
    """Port for the external qualitative (LLM) analysis service."""

    @abstractmethod
    def analyze(self, request: QualitativeRequest) -> Optional[QualitativeAssessment]:
        """Ask the service for an assessment.

        Returns:
            A validated assessment, or None when the response is unusable.

        Raises:
            QualitativeAnalysisUnavailableError: If the service cannot be
                reached after bounded retries.
        """
        raise NotImplementedError


class AlertPublisher(ABC):
    """Port for delivering alerts to subscribers."""

    @abstractmethod
    def publish(self, event: AlertEvent) -> None:
        """Deliver an alert. Must not raise on delivery failure."""
        raise NotImplementedError
