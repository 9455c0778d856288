"""Pydantic schemas for API request/response validation."""

from .common import ErrorResponse, HealthResponse
from .portfolio import (
    ApplyRecommendationsRequest,
    HoldingInput,
    HoldingsUpdateRequest,
    OptimizeRequest,
    PortfolioScoresResponse,
)

__all__ = [
    "ApplyRecommendationsRequest",
    "ErrorResponse",
    "HealthResponse",
    "HoldingInput",
    "HoldingsUpdateRequest",
    "OptimizeRequest",
    "PortfolioScoresResponse",
]
