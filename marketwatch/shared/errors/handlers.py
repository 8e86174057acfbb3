"""
Centralized error handlers for FastAPI.

Maps domain-specific errors to HTTP responses.
No stack traces or internal details are exposed to clients.
All error responses use the ErrorResponse schema.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketwatch.domain.anomaly.errors import (
    AnomalyDomainError,
    InvalidRiskScoreError,
    InvalidStatusTransitionError,
    JobNotFoundError,
    MarketDataUnavailableError,
    QualitativeAnalysisUnavailableError,
)

logger = logging.getLogger(__name__)

HTTP_404 = 404
HTTP_409 = 409
HTTP_422 = 422
HTTP_500 = 500
HTTP_503 = 503


def _error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: dict[str, str | None] = {"error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Register all domain error handlers on the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """

    @app.exception_handler(JobNotFoundError)
    async def handle_job_not_found(
        _request: Request, exc: JobNotFoundError
    ) -> JSONResponse:
        logger.warning("Analysis not found: %s", exc.job_id)
        return _error_response(HTTP_404, "Analysis not found")

    @app.exception_handler(InvalidStatusTransitionError)
    async def handle_invalid_transition(
        _request: Request, exc: InvalidStatusTransitionError
    ) -> JSONResponse:
        logger.warning("Rejected transition: %s", exc.message)
        return _error_response(
            HTTP_409, "Invalid status transition", f"{exc.current} -> {exc.target}"
        )

    @app.exception_handler(InvalidRiskScoreError)
    async def handle_invalid_score(
        _request: Request, exc: InvalidRiskScoreError
    ) -> JSONResponse:
        logger.warning("Rejected risk score: %s", exc.score)
        return _error_response(HTTP_422, "Invalid risk score")

    @app.exception_handler(MarketDataUnavailableError)
    async def handle_market_data_unavailable(
        _request: Request, exc: MarketDataUnavailableError
    ) -> JSONResponse:
        logger.error("Market data unavailable: %s", exc.message)
        return _error_response(HTTP_503, "Market data unavailable")

    @app.exception_handler(QualitativeAnalysisUnavailableError)
    async def handle_analysis_unavailable(
        _request: Request, exc: QualitativeAnalysisUnavailableError
    ) -> JSONResponse:
        logger.error("Qualitative analysis unavailable: %s", exc.reason)
        return _error_response(HTTP_503, "Qualitative analysis unavailable")

    @app.exception_handler(AnomalyDomainError)
    async def handle_anomaly_domain(
        _request: Request, exc: AnomalyDomainError
    ) -> JSONResponse:
        """Catch-all for unhandled anomaly domain errors."""
        logger.error("Unhandled anomaly domain error: %s", exc.message)
        return _error_response(HTTP_500, "Internal server error")

    @app.exception_handler(Exception)
    async def handle_unexpected(
        _request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all for unexpected errors. Never exposes internals."""
        logger.exception("Unexpected error: %s", type(exc).__name__)
        return _error_response(HTTP_500, "Internal server error")
