"""Portfolio API routes."""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from stockoptimizer.api.dependencies import get_engine, get_runner
from stockoptimizer.core.config import settings
from stockoptimizer.core.exceptions import ValidationError
from stockoptimizer.domain.indicator import IndicatorFrame
from stockoptimizer.domain.portfolio import Portfolio
from stockoptimizer.domain.recommendation import Recommendation
from stockoptimizer.portfolio.jobs import OptimizationJob, OptimizationRunner, OptimizationState
from stockoptimizer.portfolio.service import PortfolioEngine
from stockoptimizer.schemas.portfolio import (
    ApplyRecommendationsRequest,
    HoldingsUpdateRequest,
    OptimizeRequest,
    PortfolioScoresResponse,
)

router = APIRouter(prefix="/portfolios", tags=["Portfolios"])


@router.get("/{portfolio_id}/indicators/{symbol}", response_model=List[IndicatorFrame])
async def get_indicators(
    portfolio_id: str,
    symbol: str,
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    engine: PortfolioEngine = Depends(get_engine),
) -> List[IndicatorFrame]:
    """Recompute indicator frames of a symbol for a date range."""
    await engine.portfolios.load_portfolio(portfolio_id)
    end = end_date or date.today()
    start = start_date or end - timedelta(days=settings.historical_days)
    if start > end:
        raise ValidationError("start_date must not be after end_date")
    return await engine.compute_indicators(symbol.upper(), start, end)


@router.post(
    "/{portfolio_id}/optimize",
    response_model=OptimizationJob,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_optimization(
    portfolio_id: str,
    payload: Optional[OptimizeRequest] = None,
    runner: OptimizationRunner = Depends(get_runner),
) -> OptimizationJob:
    """Start a background optimization; poll the status endpoint for completion."""
    payload = payload or OptimizeRequest()
    return await runner.start(portfolio_id, payload.risk_tolerance, payload.strategy)


@router.get("/{portfolio_id}/status", response_model=OptimizationState)
async def get_optimization_status(
    portfolio_id: str,
    runner: OptimizationRunner = Depends(get_runner),
) -> OptimizationState:
    return await runner.status(portfolio_id)


@router.get("/{portfolio_id}/recommendations", response_model=Recommendation)
async def get_recommendations(
    portfolio_id: str,
    risk_tolerance: float = Query(default=settings.default_risk_tolerance, ge=0, le=1),
    expand_universe: bool = Query(default=False),
    engine: PortfolioEngine = Depends(get_engine),
) -> Recommendation:
    return await engine.generate_recommendations(portfolio_id, risk_tolerance, expand_universe)


@router.post("/{portfolio_id}/recommendations/apply", response_model=Portfolio)
async def apply_recommendations(
    portfolio_id: str,
    payload: ApplyRecommendationsRequest,
    engine: PortfolioEngine = Depends(get_engine),
) -> Portfolio:
    return await engine.apply_recommendations(
        portfolio_id, payload.allocations, payload.risk_tolerance
    )


@router.put("/{portfolio_id}/holdings", response_model=Portfolio)
async def update_holdings(
    portfolio_id: str,
    payload: HoldingsUpdateRequest,
    engine: PortfolioEngine = Depends(get_engine),
) -> Portfolio:
    return await engine.update_holdings(
        portfolio_id, [h.to_holding() for h in payload.holdings]
    )


@router.get("/{portfolio_id}/scores", response_model=PortfolioScoresResponse)
async def get_scores(
    portfolio_id: str,
    engine: PortfolioEngine = Depends(get_engine),
) -> PortfolioScoresResponse:
    portfolio = await engine.portfolios.load_portfolio(portfolio_id)
    return PortfolioScoresResponse(
        portfolio_id=portfolio.id,
        diversification_score=engine.get_diversification_score(portfolio),
        risk_score=await engine.get_risk_score(portfolio),
    )
