"""
Domain-specific errors for the anomaly bounded context.

All errors raised from the domain layer must be defined here.
These are mapped to HTTP responses at the interface layer.
No framework imports allowed.

A malformed qualitative-analysis payload is not an error: the adapter
reports "no usable assessment" and the worker falls back.
"""


class AnomalyDomainError(Exception):
    """Base error for all anomaly domain errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class MarketDataUnavailableError(AnomalyDomainError):
    """Raised when market data for a symbol cannot be fetched."""

    def __init__(self, symbol: str, reason: str) -> None:
        super().__init__(f"Market data unavailable for {symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason


class QualitativeAnalysisUnavailableError(AnomalyDomainError):
    """Raised when the qualitative analysis service is unreachable after retries."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Qualitative analysis unavailable: {reason}")
        self.reason = reason


class JobNotFoundError(AnomalyDomainError):
    """Raised when an analysis job cannot be found."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Analysis job not found: {job_id}")
        self.job_id = job_id


class InvalidStatusTransitionError(AnomalyDomainError):
    """Raised when a job status change violates the lifecycle."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Invalid status transition for job {job_id}: {current} -> {target}"
        )
        self.job_id = job_id
        self.current = current
        self.target = target


class InvalidRiskScoreError(AnomalyDomainError):
    """Raised when a risk score falls outside [0, 100]."""

    def __init__(self, score: object) -> None:
        super().__init__(
            f"Invalid risk score: {score}. Must be between 0 and 100."
        )
        self.score = score
