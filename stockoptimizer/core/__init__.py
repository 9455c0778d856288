"""Core infrastructure: settings, logging, exceptions."""

from .config import EngineConfig, get_settings, settings
from .exceptions import (
    AppException,
    ConflictError,
    ConstraintInfeasibleError,
    InstrumentUnavailableError,
    InsufficientDataError,
    NotFoundError,
    OptimizationInProgressError,
    PortfolioStateError,
    ValidationError,
)
from .logging import get_logger, setup_logging


__all__ = [
    "AppException",
    "ConflictError",
    "ConstraintInfeasibleError",
    "EngineConfig",
    "InstrumentUnavailableError",
    "InsufficientDataError",
    "NotFoundError",
    "OptimizationInProgressError",
    "PortfolioStateError",
    "ValidationError",
    "get_logger",
    "get_settings",
    "settings",
    "setup_logging",
]
