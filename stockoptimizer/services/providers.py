"""Collaborator interfaces consumed by the engine, with in-memory and database adapters.

Price acquisition, forecasting models and portfolio storage live outside the
engine; it only depends on the protocols below. The in-memory adapters back
single-instance deployments and the test suite.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Protocol, Sequence

from stockoptimizer.core.exceptions import InstrumentUnavailableError, NotFoundError
from stockoptimizer.core.logging import get_logger
from stockoptimizer.domain.forecast import Forecast
from stockoptimizer.domain.history import PortfolioHistoryEntry
from stockoptimizer.domain.indicator import IndicatorFrame
from stockoptimizer.domain.portfolio import Portfolio
from stockoptimizer.domain.price import PriceBar
from stockoptimizer.repositories import indicators_orm as indicators_repo

logger = get_logger("services.providers")


# =============================================================================
# Protocols
# =============================================================================


class PriceHistoryProvider(Protocol):
    """Protocol for daily price history sources."""

    async def get_price_history(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[PriceBar]:
        """Bars in ascending date order; empty when nothing is known."""
        ...

    async def available_symbols(self) -> set[str]:
        """Symbols with any stored price history."""
        ...


class ForecastProvider(Protocol):
    """Protocol for forecast models. Raising means the symbol cannot be forecast."""

    async def forecast(self, symbol: str) -> Forecast:
        ...


class PortfolioRepository(Protocol):
    """Protocol for portfolio persistence owned outside the engine."""

    async def load_portfolio(self, portfolio_id: str) -> Portfolio:
        ...

    async def persist_portfolio(self, portfolio: Portfolio) -> Portfolio:
        ...

    async def list_portfolio_ids(self) -> list[str]:
        ...

    async def record_history(self, entry: PortfolioHistoryEntry) -> None:
        ...

    async def list_history(self, portfolio_id: str) -> list[PortfolioHistoryEntry]:
        ...


class IndicatorStore(Protocol):
    """Protocol for indicator frame storage with range replacement."""

    async def replace_range(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
        frames: Sequence[IndicatorFrame],
    ) -> int:
        ...

    async def list_range(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[IndicatorFrame]:
        ...


# =============================================================================
# In-memory adapters
# =============================================================================


class InMemoryPriceHistoryProvider:
    """Price provider over bars held in memory."""

    def __init__(self, bars: Optional[Iterable[PriceBar]] = None):
        self._bars: dict[str, dict[date, PriceBar]] = {}
        for bar in bars or ():
            self.add_bar(bar)

    def add_bar(self, bar: PriceBar) -> None:
        self._bars.setdefault(bar.symbol, {})[bar.date] = bar

    def add_bars(self, bars: Iterable[PriceBar]) -> None:
        for bar in bars:
            self.add_bar(bar)

    async def get_price_history(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[PriceBar]:
        by_date = self._bars.get(symbol, {})
        return [by_date[d] for d in sorted(by_date) if start_date <= d <= end_date]

    async def available_symbols(self) -> set[str]:
        return {symbol for symbol, bars in self._bars.items() if bars}


class InMemoryForecastProvider:
    """Forecast provider returning preset forecasts."""

    def __init__(self, forecasts: Optional[Iterable[Forecast]] = None):
        self._forecasts: dict[str, Forecast] = {f.symbol: f for f in forecasts or ()}

    def set_forecast(self, forecast: Forecast) -> None:
        self._forecasts[forecast.symbol] = forecast

    async def forecast(self, symbol: str) -> Forecast:
        try:
            return self._forecasts[symbol]
        except KeyError:
            raise InstrumentUnavailableError(symbol, "no forecast available") from None


class InMemoryPortfolioRepository:
    """Portfolio repository held in process memory."""

    def __init__(self, portfolios: Optional[Iterable[Portfolio]] = None):
        self._portfolios: dict[str, Portfolio] = {p.id: p for p in portfolios or ()}
        self._history: dict[str, list[PortfolioHistoryEntry]] = {}

    async def load_portfolio(self, portfolio_id: str) -> Portfolio:
        try:
            return self._portfolios[portfolio_id]
        except KeyError:
            raise NotFoundError(
                f"Portfolio {portfolio_id} not found",
                details={"portfolio_id": portfolio_id},
            ) from None

    async def persist_portfolio(self, portfolio: Portfolio) -> Portfolio:
        self._portfolios[portfolio.id] = portfolio
        return portfolio

    async def list_portfolio_ids(self) -> list[str]:
        return list(self._portfolios)

    async def record_history(self, entry: PortfolioHistoryEntry) -> None:
        self._history.setdefault(entry.portfolio_id, []).append(entry)

    async def list_history(self, portfolio_id: str) -> list[PortfolioHistoryEntry]:
        return list(self._history.get(portfolio_id, []))


class InMemoryIndicatorStore:
    """Indicator store keeping frames per symbol and date."""

    def __init__(self):
        self._frames: dict[str, dict[date, IndicatorFrame]] = {}

    async def replace_range(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
        frames: Sequence[IndicatorFrame],
    ) -> int:
        stored = self._frames.setdefault(symbol, {})
        for d in [d for d in stored if start_date <= d <= end_date]:
            del stored[d]
        for frame in frames:
            stored[frame.date] = frame
        return len(frames)

    async def list_range(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[IndicatorFrame]:
        stored = self._frames.get(symbol, {})
        return [stored[d] for d in sorted(stored) if start_date <= d <= end_date]


# =============================================================================
# Database adapters
# =============================================================================


class DatabaseIndicatorStore:
    """Indicator store backed by the technical_indicators table."""

    async def replace_range(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
        frames: Sequence[IndicatorFrame],
    ) -> int:
        count = await indicators_repo.replace_indicator_range(symbol, start_date, end_date, frames)
        logger.debug(f"Stored {count} indicator frames for {symbol} {start_date}..{end_date}")
        return count

    async def list_range(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[IndicatorFrame]:
        return await indicators_repo.list_indicator_range(symbol, start_date, end_date)
