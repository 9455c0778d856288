"""Custom exceptions and centralized exception handlers."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception with structured error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to RFC 7807 problem+json style response."""
        return {
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
            **({"details": self.details} if self.details else {}),
        }


class NotFoundError(AppException):
    """Resource not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ValidationError(AppException):
    """Validation failed."""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    error_code = "VALIDATION_ERROR"
    message = "Validation failed"


class ConflictError(AppException):
    """Resource conflict."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    message = "Resource conflict"


# =============================================================================
# ENGINE ERRORS
# =============================================================================


class InsufficientDataError(AppException):
    """Not enough price history for a strict computation."""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    error_code = "INSUFFICIENT_DATA"
    message = "Insufficient price history"

    def __init__(self, symbol: str, available: int, required: int):
        super().__init__(
            message=f"{symbol}: {available} data points, {required} required",
            details={"symbol": symbol, "available": available, "required": required},
        )
        self.symbol = symbol
        self.available = available
        self.required = required


class InstrumentUnavailableError(AppException):
    """A forecast or price lookup failed for one instrument."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "INSTRUMENT_UNAVAILABLE"
    message = "Instrument data unavailable"

    def __init__(self, symbol: str, reason: str = ""):
        super().__init__(
            message=f"{symbol} unavailable: {reason}" if reason else f"{symbol} unavailable",
            details={"symbol": symbol, "reason": reason},
        )
        self.symbol = symbol
        self.reason = reason


class PortfolioStateError(AppException):
    """Portfolio cannot be processed in its current state."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "PORTFOLIO_STATE_ERROR"
    message = "Portfolio is in an invalid state for this operation"


class ConstraintInfeasibleError(AppException):
    """No candidate survives the allocation constraints."""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    error_code = "CONSTRAINT_INFEASIBLE"
    message = "Allocation constraints cannot be satisfied"


class OptimizationInProgressError(ConflictError):
    """An optimization run is already active for the portfolio."""

    error_code = "OPTIMIZATION_IN_PROGRESS"
    message = "Portfolio optimization already in progress"


def register_exception_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers."""

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request, exc: AppException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        import logging

        logger = logging.getLogger("stockoptimizer.error")
        logger.exception(
            "Unhandled exception",
            extra={
                "extra_fields": {
                    "request_id": getattr(request.state, "request_id", "unknown"),
                    "path": request.url.path,
                    "method": request.method,
                }
            },
        )

        from .config import settings

        if settings.debug:
            message = str(exc)
        else:
            message = "An unexpected error occurred"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": message,
                "status": 500,
            },
            headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
        )
