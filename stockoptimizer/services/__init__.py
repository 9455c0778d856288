"""Collaborator protocols and adapters."""

from .providers import (
    DatabaseIndicatorStore,
    ForecastProvider,
    IndicatorStore,
    InMemoryForecastProvider,
    InMemoryIndicatorStore,
    InMemoryPortfolioRepository,
    InMemoryPriceHistoryProvider,
    PortfolioRepository,
    PriceHistoryProvider,
)

__all__ = [
    "DatabaseIndicatorStore",
    "ForecastProvider",
    "IndicatorStore",
    "InMemoryForecastProvider",
    "InMemoryIndicatorStore",
    "InMemoryPortfolioRepository",
    "InMemoryPriceHistoryProvider",
    "PortfolioRepository",
    "PriceHistoryProvider",
]
