"""Portfolio workflows: action plans, the engine facade and background jobs."""

from .actions import generate_action_plan
from .jobs import (
    OptimizationJob,
    OptimizationRunner,
    OptimizationState,
    refresh_all_recommendations,
)
from .service import PortfolioEngine, ProfileBatch, recommendation_cache_key

__all__ = [
    "OptimizationJob",
    "OptimizationRunner",
    "OptimizationState",
    "PortfolioEngine",
    "ProfileBatch",
    "generate_action_plan",
    "recommendation_cache_key",
    "refresh_all_recommendations",
]
