"""API dependencies providing the engine and the optimization runner.

The process-wide engine defaults to in-memory collaborators with database
indicator storage; deployments call ``configure_engine`` at startup with
their own providers, tests use ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Optional

from stockoptimizer.portfolio.jobs import OptimizationRunner
from stockoptimizer.portfolio.service import PortfolioEngine
from stockoptimizer.services.providers import (
    InMemoryForecastProvider,
    InMemoryPortfolioRepository,
    InMemoryPriceHistoryProvider,
)

_engine: Optional[PortfolioEngine] = None
_runner: Optional[OptimizationRunner] = None


def configure_engine(engine: PortfolioEngine) -> None:
    """Install the engine used by the API; resets the runner."""
    global _engine, _runner
    _engine = engine
    _runner = None


def get_engine() -> PortfolioEngine:
    """Get singleton engine."""
    global _engine
    if _engine is None:
        _engine = PortfolioEngine(
            prices=InMemoryPriceHistoryProvider(),
            forecasts=InMemoryForecastProvider(),
            portfolios=InMemoryPortfolioRepository(),
        )
    return _engine


def get_runner() -> OptimizationRunner:
    """Get singleton optimization runner bound to the engine."""
    global _runner
    if _runner is None:
        _runner = OptimizationRunner(get_engine())
    return _runner


def current_runner() -> Optional[OptimizationRunner]:
    return _runner
