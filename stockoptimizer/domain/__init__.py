"""Domain models for strongly-typed data throughout the engine.

Usage:
    from stockoptimizer.domain import PriceBar, Portfolio, OptimizationStatus
"""

from stockoptimizer.domain.forecast import Forecast
from stockoptimizer.domain.history import ChangeType, PortfolioHistoryEntry
from stockoptimizer.domain.indicator import IndicatorFrame
from stockoptimizer.domain.portfolio import (
    Holding,
    OptimizationStatus,
    Portfolio,
    RecommendationType,
)
from stockoptimizer.domain.price import PriceBar
from stockoptimizer.domain.recommendation import Recommendation

__all__ = [
    "ChangeType",
    "Forecast",
    "Holding",
    "IndicatorFrame",
    "OptimizationStatus",
    "Portfolio",
    "PortfolioHistoryEntry",
    "PriceBar",
    "Recommendation",
    "RecommendationType",
]
