"""Pytest configuration and fixtures."""

from __future__ import annotations

import fnmatch
from datetime import date, timedelta
from typing import Callable, Iterable, Mapping, Optional
from unittest.mock import AsyncMock, patch

import numpy as np
import pytest


START_DATE = date(2025, 1, 1)
END_DATE = START_DATE + timedelta(days=299)


class FakeValkey:
    """In-memory stand-in for the redis.asyncio client used by Cache."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key: str):
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None):
        self.store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def scan_iter(self, match: str = "*", count: Optional[int] = None):
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        return True


@pytest.fixture(autouse=True)
def fake_valkey():
    """Route every Cache call to an in-memory store."""
    fake = FakeValkey()
    with patch(
        "stockoptimizer.cache.cache.get_valkey_client",
        new=AsyncMock(return_value=fake),
    ):
        yield fake


# ============================================================================
# Price and forecast builders
# ============================================================================


def make_bars(symbol: str, closes: Iterable[float], start: date = START_DATE) -> list:
    """Daily bars on consecutive dates."""
    from stockoptimizer.domain.price import PriceBar

    return [
        PriceBar(
            symbol=symbol,
            date=start + timedelta(days=i),
            open=c,
            high=c,
            low=c,
            close=c,
            adj_close=c,
            volume=1_000,
        )
        for i, c in enumerate(closes)
    ]


def zigzag_closes(
    n: int,
    start: float = 100.0,
    drift: float = 0.0,
    amplitude: float = 0.01,
) -> list[float]:
    """Deterministic path alternating +/- ``amplitude`` around ``drift``."""
    closes = [start]
    for t in range(1, n):
        r = drift + (amplitude if t % 2 else -amplitude)
        closes.append(closes[-1] * (1 + r))
    return closes


def random_walk_closes(
    n: int,
    seed: int,
    drift: float = 0.0005,
    vol: float = 0.015,
    start: float = 100.0,
) -> list[float]:
    rng = np.random.default_rng(seed)
    returns = rng.normal(drift, vol, n - 1)
    return list(start * np.cumprod(np.concatenate([[1.0], 1 + returns])))


def make_forecast(symbol: str, current_price: float, change_pct: float, confidence: float = 80.0):
    from stockoptimizer.domain.forecast import Forecast

    return Forecast(
        symbol=symbol,
        as_of_date=END_DATE,
        current_price=current_price,
        predicted_price=current_price * (1 + change_pct / 100),
        predicted_change_percent=change_pct,
        confidence_score=confidence,
        target_date=END_DATE + timedelta(days=90),
    )


def make_profile(symbol: str, predicted_return: float, volatility: float, **overrides):
    """AnalysisProfile with neutral technicals unless overridden."""
    from stockoptimizer.quant_engine.types import AnalysisProfile

    values = dict(
        symbol=symbol,
        current_price=100.0,
        predicted_price=100.0 * (1 + predicted_return),
        predicted_return=predicted_return,
        volatility=volatility,
        sharpe_ratio=0.0,
        confidence_score=0.8,
        momentum_score=0.0,
        technical_score=0.5,
        historical_returns=(),
        data_points=250,
    )
    values.update(overrides)
    return AnalysisProfile(**values)


def make_portfolio(portfolio_id: str, positions: Mapping[str, tuple[float, float]], **fields):
    """Portfolio from ``{symbol: (shares, price)}`` bought at the current price."""
    from stockoptimizer.domain.portfolio import Holding, Portfolio

    holdings = [
        Holding(
            symbol=symbol,
            shares=shares,
            entry_price=price,
            entry_date=START_DATE,
            current_price=price,
        )
        for symbol, (shares, price) in positions.items()
    ]
    return Portfolio(id=portfolio_id, owner="tester", name="Test", holdings=holdings, **fields)


# ============================================================================
# Engine fixtures
# ============================================================================


@pytest.fixture
def engine_factory() -> Callable:
    """Build a PortfolioEngine over in-memory collaborators.

    ``series`` maps symbol to closes ending on END_DATE, ``changes`` maps
    symbol to the forecast change in percent.
    """
    from stockoptimizer.core.config import EngineConfig
    from stockoptimizer.portfolio.service import PortfolioEngine
    from stockoptimizer.services.providers import (
        InMemoryForecastProvider,
        InMemoryIndicatorStore,
        InMemoryPortfolioRepository,
        InMemoryPriceHistoryProvider,
    )

    def build(
        series: Mapping[str, list[float]],
        changes: Mapping[str, float],
        portfolios: Iterable = (),
        config: Optional[EngineConfig] = None,
    ) -> PortfolioEngine:
        prices = InMemoryPriceHistoryProvider()
        forecasts = InMemoryForecastProvider()
        for symbol, closes in series.items():
            start = END_DATE - timedelta(days=len(closes) - 1)
            prices.add_bars(make_bars(symbol, closes, start))
        for symbol, change in changes.items():
            last = series[symbol][-1] if symbol in series else 100.0
            forecasts.set_forecast(make_forecast(symbol, last, change))

        return PortfolioEngine(
            prices=prices,
            forecasts=forecasts,
            portfolios=InMemoryPortfolioRepository(portfolios),
            indicator_store=InMemoryIndicatorStore(),
            config=config or EngineConfig(iterations=200, learning_rate=0.05),
            today=lambda: END_DATE,
        )

    return build


@pytest.fixture
def scenario_engine(engine_factory):
    """AAPL 100@150 and MSFT 50@300 with AAPL +8% and MSFT -4% forecasts."""
    aapl = zigzag_closes(250, start=120.0, drift=0.002, amplitude=0.02)
    msft = zigzag_closes(250, start=400.0, drift=-0.002, amplitude=0.015)
    portfolio = make_portfolio("p1", {"AAPL": (100, 150.0), "MSFT": (50, 300.0)})
    return engine_factory(
        {"AAPL": aapl, "MSFT": msft},
        {"AAPL": 8.0, "MSFT": -4.0},
        portfolios=[portfolio],
    )
