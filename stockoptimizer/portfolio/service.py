"""Portfolio engine - analysis, allocation and recommendation workflows.

Connects the quant functions to price, forecast and portfolio collaborators.
Per-instrument failures during analysis are absorbed into side lists; a
portfolio without value aborts the operation with ``PortfolioStateError``.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Callable, Iterable, Mapping, Optional, Sequence
from urllib.parse import quote

import pandas as pd

from stockoptimizer.cache.cache import Cache
from stockoptimizer.core.config import EngineConfig, settings
from stockoptimizer.core.exceptions import (
    AppException,
    InstrumentUnavailableError,
    PortfolioStateError,
    ValidationError,
)
from stockoptimizer.core.logging import get_logger
from stockoptimizer.domain.forecast import Forecast
from stockoptimizer.domain.history import (
    ChangeType,
    PortfolioHistoryEntry,
    recommendation_reason,
)
from stockoptimizer.domain.indicator import IndicatorFrame
from stockoptimizer.domain.portfolio import (
    Holding,
    OptimizationStatus,
    Portfolio,
    RecommendationType,
    can_transition,
)
from stockoptimizer.domain.price import PriceBar
from stockoptimizer.domain.recommendation import Recommendation
from stockoptimizer.portfolio import actions as action_plan
from stockoptimizer.quant_engine import analytics
from stockoptimizer.quant_engine.indicators import compute_indicator_frames
from stockoptimizer.quant_engine.optimizer import optimize_allocation as allocate
from stockoptimizer.quant_engine.risk import (
    compute_correlation_matrix,
    compute_daily_returns,
    compute_return_statistics,
    compute_sharpe_ratio,
    compute_volatility,
)
from stockoptimizer.quant_engine.scoring import validate_risk_tolerance
from stockoptimizer.quant_engine.signals import analyze_trend, compute_technical_score
from stockoptimizer.quant_engine.types import (
    AllocationPlan,
    AllocationStrategy,
    AnalysisProfile,
    InsufficientData,
    StockAction,
)
from stockoptimizer.services.providers import (
    DatabaseIndicatorStore,
    ForecastProvider,
    IndicatorStore,
    PortfolioRepository,
    PriceHistoryProvider,
)

logger = get_logger("portfolio.service")

_recommendation_cache = Cache(
    prefix="recommendations", default_ttl=settings.recommendation_cache_ttl
)


def _cache_safe(portfolio_id: str) -> str:
    # Percent-encoded so ids cannot carry ":" separators or SCAN glob syntax.
    return quote(str(portfolio_id), safe="")


def recommendation_cache_key(
    portfolio_id: str,
    risk_tolerance: float,
    expand_universe: bool,
) -> str:
    """Cache key of one (portfolio, risk tolerance, expansion flag) combination."""
    return f"{_cache_safe(portfolio_id)}/{risk_tolerance:.4f}/{int(expand_universe)}"


@dataclass
class ProfileBatch:
    """Analysis profiles of a symbol batch with the symbols that were left out.

    ``insufficient_symbols`` lists symbols analysed on a short history
    (still profiled) as well as symbols without any price data (omitted).
    """

    profiles: dict[str, AnalysisProfile] = field(default_factory=dict)
    failed_symbols: list[str] = field(default_factory=list)
    insufficient_symbols: list[str] = field(default_factory=list)

    def correlations(self, min_overlap: int) -> pd.DataFrame:
        return compute_correlation_matrix(
            {s: p.historical_returns for s, p in self.profiles.items()},
            min_overlap=min_overlap,
        )


def build_analysis_profile(
    symbol: str,
    bars: Sequence[PriceBar],
    forecast: Forecast,
    config: EngineConfig,
) -> tuple[AnalysisProfile, bool]:
    """
    Build the analysis profile of one instrument.

    Args:
        symbol: Ticker symbol
        bars: Non-empty price bars in ascending date order
        forecast: Forecast of the instrument
        config: Engine parameters

    Returns:
        The profile, and whether it was built on fewer returns than
        ``config.min_history_points``.
    """
    closes = [bar.close for bar in bars]
    stats = compute_return_statistics(
        symbol, closes, config.daily_risk_free_rate, config.min_history_points
    )
    short_history = isinstance(stats, InsufficientData)
    if short_history:
        returns = compute_daily_returns(closes)
        historical_returns = tuple(float(r) for r in returns)
        volatility = compute_volatility(returns)
        sharpe = compute_sharpe_ratio(returns, config.daily_risk_free_rate)
    else:
        historical_returns = stats.returns
        volatility = stats.volatility
        sharpe = stats.sharpe_ratio

    frames = compute_indicator_frames(symbol, bars, config.indicator_stability_points)
    trend = analyze_trend(frames)

    profile = AnalysisProfile(
        symbol=symbol,
        current_price=closes[-1],
        predicted_price=forecast.predicted_price,
        predicted_return=forecast.predicted_return,
        volatility=volatility,
        sharpe_ratio=sharpe,
        confidence_score=forecast.confidence,
        momentum_score=trend.momentum,
        technical_score=compute_technical_score(trend),
        historical_returns=historical_returns,
        trend=trend,
        data_points=len(bars),
    )
    return profile, short_history


def _holding_prices(
    portfolio: Portfolio,
    profiles: Mapping[str, AnalysisProfile],
) -> dict[str, float]:
    """Holding price, or the latest analysed close for holdings without one."""
    prices = {}
    for holding in portfolio.holdings:
        price = holding.current_price
        if price <= 0 and holding.symbol in profiles:
            price = profiles[holding.symbol].current_price
        prices[holding.symbol] = price
    return prices


class PortfolioEngine:
    """Entry point for indicator, allocation and recommendation operations."""

    def __init__(
        self,
        prices: PriceHistoryProvider,
        forecasts: ForecastProvider,
        portfolios: PortfolioRepository,
        indicator_store: Optional[IndicatorStore] = None,
        config: Optional[EngineConfig] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.prices = prices
        self.forecasts = forecasts
        self.portfolios = portfolios
        self.indicator_store = indicator_store or DatabaseIndicatorStore()
        self.config = config or EngineConfig.from_settings()
        self._today = today or date.today
        self._cache = _recommendation_cache

    def _history_window(self) -> tuple[date, date]:
        end = self._today()
        return end - timedelta(days=self.config.historical_days), end

    # -------------------------------------------------------------------------
    # Indicators
    # -------------------------------------------------------------------------

    async def compute_indicators(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> list[IndicatorFrame]:
        """
        Recompute and store the indicator frames of ``symbol`` for a date range.

        Stored frames in the range are replaced, never merged, so repeated
        calls give identical results. An empty price history clears the range
        and returns an empty list.
        """
        if start_date > end_date:
            raise ValidationError(
                f"start_date {start_date} is after end_date {end_date}",
                details={"start_date": str(start_date), "end_date": str(end_date)},
            )

        try:
            bars = await self.prices.get_price_history(symbol, start_date, end_date)
        except AppException:
            raise
        except Exception as e:
            raise InstrumentUnavailableError(symbol, str(e)) from e

        frames = compute_indicator_frames(
            symbol, bars, self.config.indicator_stability_points
        )
        await self.indicator_store.replace_range(symbol, start_date, end_date, frames)
        logger.info(f"Computed {len(frames)} indicator frames for {symbol}")
        return frames

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    async def compute_analysis_profiles(
        self,
        symbols: Iterable[str],
        risk_tolerance: float,
    ) -> ProfileBatch:
        """
        Analyse each symbol in turn.

        A price or forecast failure excludes that symbol and is reported in
        ``failed_symbols``; the rest of the batch continues.
        """
        risk_tolerance = validate_risk_tolerance(risk_tolerance)
        start, end = self._history_window()
        batch = ProfileBatch()

        for symbol in dict.fromkeys(symbols):
            try:
                bars = await self.prices.get_price_history(symbol, start, end)
            except Exception as e:
                logger.warning(f"Price history unavailable for {symbol}: {e}")
                batch.failed_symbols.append(symbol)
                continue

            if not bars:
                logger.info(f"No price history for {symbol}, skipped")
                batch.insufficient_symbols.append(symbol)
                continue

            try:
                forecast = await self.forecasts.forecast(symbol)
            except Exception as e:
                logger.warning(f"Forecast unavailable for {symbol}: {e}")
                batch.failed_symbols.append(symbol)
                continue

            profile, short_history = build_analysis_profile(symbol, bars, forecast, self.config)
            if short_history:
                batch.insufficient_symbols.append(symbol)
            batch.profiles[symbol] = profile

        logger.info(
            f"Analysed {len(batch.profiles)} symbols (rt={risk_tolerance:.2f}), "
            f"{len(batch.failed_symbols)} failed, {len(batch.insufficient_symbols)} short"
        )
        return batch

    # -------------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------------

    def _allocate(
        self,
        batch: ProfileBatch,
        risk_tolerance: float,
        strategy: AllocationStrategy,
        current_symbols: Sequence[str],
        correlations: Optional[pd.DataFrame] = None,
    ) -> AllocationPlan:
        if correlations is None and batch.profiles:
            correlations = batch.correlations(self.config.min_history_points)
        return allocate(
            batch.profiles,
            risk_tolerance,
            strategy=strategy,
            current_symbols=current_symbols,
            config=self.config,
            correlations=correlations,
        )

    async def optimize_allocation(
        self,
        symbols: Iterable[str],
        risk_tolerance: float,
        strategy: AllocationStrategy = AllocationStrategy.SCORE_PROPORTIONAL,
        current_symbols: Sequence[str] = (),
    ) -> AllocationPlan:
        """Analyse ``symbols`` and allocate across the ones that could be profiled."""
        batch = await self.compute_analysis_profiles(symbols, risk_tolerance)
        return self._allocate(batch, risk_tolerance, strategy, current_symbols)

    def generate_action_plan(
        self,
        portfolio: Portfolio,
        plan: AllocationPlan,
        profiles: Optional[Mapping[str, AnalysisProfile]] = None,
    ) -> list[StockAction]:
        return action_plan.generate_action_plan(portfolio, plan.weights, profiles)

    # -------------------------------------------------------------------------
    # Scores
    # -------------------------------------------------------------------------

    def get_diversification_score(self, portfolio: Portfolio) -> float:
        return analytics.compute_diversification_score(portfolio)

    async def get_risk_score(self, portfolio: Portfolio) -> float:
        """Risk score (0-100) of the current holdings from their price histories."""
        start, end = self._history_window()
        returns_by_symbol = {}
        for holding in portfolio.holdings:
            try:
                bars = await self.prices.get_price_history(holding.symbol, start, end)
            except Exception as e:
                logger.warning(f"Price history unavailable for {holding.symbol}: {e}")
                continue
            returns = compute_daily_returns([bar.close for bar in bars])
            if returns.size:
                returns_by_symbol[holding.symbol] = returns
        return self._risk_score(portfolio, returns_by_symbol)

    def _risk_score(
        self,
        portfolio: Portfolio,
        returns_by_symbol: Mapping[str, Sequence[float]],
    ) -> float:
        if not returns_by_symbol:
            return analytics.DEFAULT_RISK_SCORE
        volatilities = {s: compute_volatility(r) for s, r in returns_by_symbol.items()}
        correlations = compute_correlation_matrix(
            returns_by_symbol, min_overlap=self.config.min_history_points
        )
        return analytics.compute_risk_score(
            portfolio, volatilities, correlations, self.config.max_daily_risk
        )

    # -------------------------------------------------------------------------
    # Recommendations
    # -------------------------------------------------------------------------

    async def expansion_candidates(self, portfolio: Portfolio) -> list[str]:
        """Universe symbols with price data that the portfolio does not hold."""
        if not self.config.enable_universe_expansion or self.config.max_expansion_stocks <= 0:
            return []
        available = await self.prices.available_symbols()
        held = set(portfolio.symbols)
        candidates = [
            s for s in self.config.expansion_universe if s in available and s not in held
        ]
        return candidates[: self.config.max_expansion_stocks]

    async def generate_recommendations(
        self,
        portfolio_id: str,
        risk_tolerance: float,
        expand_universe: bool = False,
    ) -> Recommendation:
        """
        Recommend a target allocation for a portfolio.

        Results are cached per (portfolio, risk tolerance, expansion flag)
        until the portfolio's recommendations are applied or its holdings
        change.

        Raises:
            NotFoundError: Unknown portfolio.
            PortfolioStateError: The portfolio has no value to allocate.
        """
        risk_tolerance = validate_risk_tolerance(risk_tolerance)
        key = recommendation_cache_key(portfolio_id, risk_tolerance, expand_universe)

        cached = await self._cache.get(key)
        if cached is not None:
            return Recommendation.model_validate(cached)

        portfolio = await self.portfolios.load_portfolio(portfolio_id)
        if portfolio.total_value <= 0:
            raise PortfolioStateError(
                f"Portfolio {portfolio_id} has no value to allocate",
                details={"portfolio_id": portfolio_id},
            )

        symbols = list(portfolio.symbols)
        if expand_universe:
            symbols.extend(await self.expansion_candidates(portfolio))

        batch = await self.compute_analysis_profiles(symbols, risk_tolerance)
        correlations = batch.correlations(self.config.min_history_points) if batch.profiles else None
        plan = self._allocate(
            batch,
            risk_tolerance,
            AllocationStrategy.SCORE_PROPORTIONAL,
            portfolio.symbols,
            correlations,
        )
        actions = self.generate_action_plan(portfolio, plan, batch.profiles)

        current_weights = portfolio.weights()
        current = analytics.compute_expected_performance(
            current_weights,
            batch.profiles,
            correlations,
            self.config.prediction_horizon_days,
            self.config.risk_free_rate,
        )
        target = analytics.compute_expected_performance(
            plan.weights,
            batch.profiles,
            correlations,
            self.config.prediction_horizon_days,
            self.config.risk_free_rate,
        )
        improvement = analytics.compute_improvement_metrics(
            current, target, current_weights, plan.weights
        )

        recommendation = Recommendation(
            portfolio_id=portfolio.id,
            risk_tolerance=risk_tolerance,
            expand_universe=expand_universe,
            recommendation_type=RecommendationType.from_risk_tolerance(risk_tolerance),
            strategy=plan.strategy.value,
            allocations=plan.weights,
            scores=plan.scores,
            actions=[a.to_dict() for a in actions],
            current_performance=asdict(current),
            expected_performance=asdict(target),
            improvement=asdict(improvement),
            confidence_score=analytics.compute_recommendation_confidence(batch.profiles),
            diversification_score=self.get_diversification_score(portfolio),
            risk_score=self._risk_score(
                portfolio,
                {s: p.historical_returns for s, p in batch.profiles.items() if p.historical_returns},
            ),
            fallback_used=plan.fallback_used,
            cap_relaxed=plan.cap_relaxed,
            failed_symbols=batch.failed_symbols,
            insufficient_symbols=batch.insufficient_symbols,
        )

        await self._cache.set(key, recommendation.model_dump(mode="json"))
        return recommendation

    async def invalidate_recommendations(self, portfolio_id: str) -> int:
        """Drop every cached recommendation of a portfolio."""
        return await self._cache.invalidate_pattern(f"{_cache_safe(portfolio_id)}/*")

    # -------------------------------------------------------------------------
    # Portfolio updates
    # -------------------------------------------------------------------------

    async def _latest_price(self, symbol: str) -> float:
        start, end = self._history_window()
        try:
            bars = await self.prices.get_price_history(symbol, start, end)
            if bars:
                return bars[-1].close
            return (await self.forecasts.forecast(symbol)).current_price
        except Exception as e:
            logger.warning(f"No price available for {symbol}: {e}")
            return 0.0

    def _rebalance_holdings(
        self,
        portfolio: Portfolio,
        weights: Mapping[str, float],
        prices: Mapping[str, float],
    ) -> list[Holding]:
        """Whole-share holdings worth ``weight * total_value`` at ``prices``."""
        total_value = portfolio.total_value
        if total_value <= 0 or not math.isfinite(total_value):
            raise PortfolioStateError(
                f"Portfolio {portfolio.id} has no value to allocate",
                details={"portfolio_id": portfolio.id, "total_value": total_value},
            )

        holdings: list[Holding] = []
        for symbol, weight in weights.items():
            price = prices.get(symbol, 0.0)
            if price <= 0:
                logger.warning(f"{symbol}: no price, left out of the allocation")
                continue
            shares = math.floor(total_value * weight / price)
            if shares < 1:
                continue
            existing = portfolio.holding(symbol)
            holdings.append(
                Holding(
                    symbol=symbol,
                    company_name=existing.company_name if existing else None,
                    shares=shares,
                    entry_price=existing.entry_price if existing else price,
                    entry_date=existing.entry_date if existing else self._today(),
                    current_price=price,
                )
            )

        if not holdings:
            raise PortfolioStateError(
                f"Allocation for portfolio {portfolio.id} leaves no whole-share position",
                details={"portfolio_id": portfolio.id},
            )
        return holdings

    async def apply_recommendations(
        self,
        portfolio_id: str,
        allocations: Mapping[str, float],
        risk_tolerance: float,
    ) -> Portfolio:
        """
        Rebuild a portfolio's holdings from recommended weights.

        Weights are normalised; weights below the minimum allocation are
        skipped. Existing positions keep their entry price and date. The
        portfolio moves to UPGRADED_WITH_AI and its cached recommendations
        are dropped.

        Raises:
            ValidationError: Negative or all-zero weights.
            PortfolioStateError: Zero portfolio value, or an optimization
                is running.
        """
        risk_tolerance = validate_risk_tolerance(risk_tolerance)
        if any(w < 0 or not math.isfinite(w) for w in allocations.values()):
            raise ValidationError("Allocations must be finite and non-negative")
        total_weight = sum(allocations.values())
        if total_weight <= 0:
            raise ValidationError("Allocations must contain a positive weight")

        portfolio = await self.portfolios.load_portfolio(portfolio_id)
        target_status = OptimizationStatus.UPGRADED_WITH_AI
        if not can_transition(portfolio.optimization_status, target_status):
            raise PortfolioStateError(
                f"Cannot apply recommendations while portfolio {portfolio_id} is "
                f"{portfolio.optimization_status.value}",
                details={"portfolio_id": portfolio_id},
            )

        weights = {
            symbol: w / total_weight
            for symbol, w in allocations.items()
            if w / total_weight >= self.config.min_allocation
        }
        prices: dict[str, float] = {}
        for symbol in weights:
            holding = portfolio.holding(symbol)
            if holding is not None and holding.current_price > 0:
                prices[symbol] = holding.current_price
            else:
                prices[symbol] = await self._latest_price(symbol)

        holdings = self._rebalance_holdings(portfolio, weights, prices)
        updated = portfolio.with_holdings(
            holdings,
            optimization_status=target_status,
            ai_recommendation_type=RecommendationType.from_risk_tolerance(risk_tolerance),
        )
        updated = updated.model_copy(update={"risk_score": await self.get_risk_score(updated)})
        await self.portfolios.persist_portfolio(updated)

        await self.portfolios.record_history(
            PortfolioHistoryEntry(
                portfolio_id=portfolio.id,
                change_type=ChangeType.AI_RECOMMENDATION,
                previous_allocations=portfolio.weights(),
                new_allocations=updated.weights(),
                previous_value=portfolio.total_value,
                new_value=updated.total_value,
                risk_tolerance=risk_tolerance,
                change_reason=recommendation_reason(risk_tolerance),
            )
        )
        await self.invalidate_recommendations(portfolio.id)
        logger.info(
            f"Applied recommendations to portfolio {portfolio.id}: "
            f"{len(updated.holdings)} positions"
        )
        return updated

    async def update_holdings(
        self,
        portfolio_id: str,
        holdings: Sequence[Holding],
    ) -> Portfolio:
        """Replace holdings; the portfolio is no longer considered optimized."""
        portfolio = await self.portfolios.load_portfolio(portfolio_id)
        updated = portfolio.with_holdings(list(holdings))
        await self.portfolios.persist_portfolio(updated)
        await self.portfolios.record_history(
            PortfolioHistoryEntry(
                portfolio_id=portfolio.id,
                change_type=ChangeType.UPDATE,
                change_source="USER",
                previous_allocations=portfolio.weights(),
                new_allocations=updated.weights(),
                previous_value=portfolio.total_value,
                new_value=updated.total_value,
                change_reason="Holdings updated",
            )
        )
        await self.invalidate_recommendations(portfolio.id)
        return updated

    # -------------------------------------------------------------------------
    # Optimization
    # -------------------------------------------------------------------------

    async def run_optimization(
        self,
        portfolio_id: str,
        risk_tolerance: float,
        strategy: AllocationStrategy = AllocationStrategy.MEAN_VARIANCE,
        claim: bool = True,
    ) -> Optional[Portfolio]:
        """
        Optimize a portfolio's current holdings and store the result.

        With ``claim`` the portfolio is moved to OPTIMIZING first; without it
        the caller has already done so and a portfolio found in any other
        state means the run was superseded. On success the portfolio ends
        OPTIMIZED; any failure sets OPTIMIZATION_FAILED and re-raises.
        Returns None when the holdings were edited before the result could be
        stored, in which case the result is discarded.
        """
        risk_tolerance = validate_risk_tolerance(risk_tolerance)
        portfolio = await self.portfolios.load_portfolio(portfolio_id)
        if portfolio.optimization_status != OptimizationStatus.OPTIMIZING:
            if not claim:
                logger.info(
                    f"Portfolio {portfolio_id} is {portfolio.optimization_status.value}, "
                    "optimization skipped"
                )
                return None
            portfolio = portfolio.with_status(OptimizationStatus.OPTIMIZING)
            await self.portfolios.persist_portfolio(portfolio)

        try:
            if portfolio.total_value <= 0:
                raise PortfolioStateError(
                    f"Portfolio {portfolio_id} has no value to allocate",
                    details={"portfolio_id": portfolio_id},
                )
            batch = await self.compute_analysis_profiles(portfolio.symbols, risk_tolerance)
            plan = self._allocate(batch, risk_tolerance, strategy, portfolio.symbols)
            prices = _holding_prices(portfolio, batch.profiles)
            holdings = self._rebalance_holdings(portfolio, plan.weights, prices)
        except Exception as e:
            await self._mark_failed(portfolio_id, e)
            raise

        latest = await self.portfolios.load_portfolio(portfolio_id)
        if latest.optimization_status != OptimizationStatus.OPTIMIZING:
            logger.info(
                f"Portfolio {portfolio_id} changed to {latest.optimization_status.value} "
                "during optimization, result discarded"
            )
            return None

        updated = latest.with_holdings(
            holdings, optimization_status=OptimizationStatus.OPTIMIZING
        ).with_status(OptimizationStatus.OPTIMIZED)
        updated = updated.model_copy(update={"risk_score": await self.get_risk_score(updated)})
        await self.portfolios.persist_portfolio(updated)
        await self.portfolios.record_history(
            PortfolioHistoryEntry(
                portfolio_id=portfolio_id,
                change_type=ChangeType.OPTIMIZATION,
                previous_allocations=latest.weights(),
                new_allocations=updated.weights(),
                previous_value=latest.total_value,
                new_value=updated.total_value,
                risk_tolerance=risk_tolerance,
                change_reason=f"{plan.strategy.value} optimization",
            )
        )
        await self.invalidate_recommendations(portfolio_id)
        logger.info(
            f"Optimized portfolio {portfolio_id} ({plan.strategy.value}): "
            f"{len(updated.holdings)} positions after {plan.iterations} iterations"
        )
        return updated

    async def _mark_failed(self, portfolio_id: str, error: Exception) -> None:
        logger.error(f"Optimization of portfolio {portfolio_id} failed: {error}")
        current = await self.portfolios.load_portfolio(portfolio_id)
        if current.optimization_status == OptimizationStatus.OPTIMIZING:
            await self.portfolios.persist_portfolio(
                current.with_status(OptimizationStatus.OPTIMIZATION_FAILED)
            )
