"""
Portfolio analytics - diversification, risk score and allocation comparisons.

Scores are expressed on a 0-100 scale for display; performance metrics are
annualised from daily volatility (252 trading days) and from the forecast
horizon for returns.
"""

from __future__ import annotations

import logging
import math
from typing import Mapping

import numpy as np
import pandas as pd

from stockoptimizer.domain.portfolio import Portfolio
from stockoptimizer.quant_engine.risk import compute_portfolio_risk
from stockoptimizer.quant_engine.types import (
    AnalysisProfile,
    ExpectedPerformance,
    ImprovementMetrics,
)


logger = logging.getLogger(__name__)

TRADING_DAYS = 252
DIVERSIFIED_POSITION_COUNT = 20
EFFECTIVE_POSITION_TARGET = 10
DEFAULT_RISK_SCORE = 50.0
DEFAULT_CONFIDENCE_SCORE = 60.0
DRAWDOWN_MULTIPLIER = 2.5


def _clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, value))


def _matrix_for(symbols: list[str], correlations: pd.DataFrame | None) -> np.ndarray:
    """Correlation sub-matrix for ``symbols``; unknown pairs count as uncorrelated."""
    n = len(symbols)
    if correlations is None:
        return np.eye(n)
    matrix = np.eye(n)
    known = set(correlations.index)
    for i, a in enumerate(symbols):
        for j, b in enumerate(symbols):
            if i != j and a in known and b in known:
                matrix[i, j] = float(correlations.loc[a, b])
    return matrix


# =============================================================================
# Current portfolio scores
# =============================================================================

def compute_diversification_score(portfolio: Portfolio) -> float:
    """
    Diversification score (0-100) of current holdings.

    Half rewards the number of positions (saturating at 20), half rewards
    evenness of weights through ``1 - HHI``.
    """
    weights = [h.weight for h in portfolio.holdings if h.weight > 0]
    if not weights:
        return 0.0

    count_score = min(len(weights) / DIVERSIFIED_POSITION_COUNT, 1.0) * 50
    hhi = sum(w * w for w in weights)
    concentration_score = (1 - hhi) * 50
    return _clamp(count_score + concentration_score)


def compute_risk_score(
    portfolio: Portfolio,
    volatilities: Mapping[str, float],
    correlations: pd.DataFrame | None = None,
    max_daily_risk: float = 0.03,
) -> float:
    """
    Risk score (0-100) of current holdings.

    Daily portfolio volatility is mapped linearly so that ``max_daily_risk``
    scores 100. Without correlations the weighted average volatility is used.
    Returns 50 when the portfolio has no value or no volatility data.
    """
    if portfolio.total_value <= 0:
        return DEFAULT_RISK_SCORE

    weighted = [(h.symbol, h.weight) for h in portfolio.holdings if h.symbol in volatilities]
    if not weighted:
        return DEFAULT_RISK_SCORE

    symbols = [s for s, _ in weighted]
    weights = np.array([w for _, w in weighted])
    vols = np.array([volatilities[s] for s in symbols])

    if correlations is not None:
        risk = compute_portfolio_risk(weights, vols, _matrix_for(symbols, correlations))
    else:
        risk = float(weights @ vols)

    return _clamp(risk / max_daily_risk * 100)


# =============================================================================
# Allocation analytics
# =============================================================================

def compute_allocation_diversification(
    weights: Mapping[str, float],
    correlations: pd.DataFrame | None = None,
) -> float:
    """
    Diversification score (0-100) of target weights.

    Combines the effective number of positions ``1 / sum(w^2)`` with the
    average absolute pairwise correlation (0.5 assumed when unknown).
    """
    symbols = [s for s, w in weights.items() if w > 0]
    if not symbols:
        return 0.0

    w = np.array([weights[s] for s in symbols])
    effective_n = 1.0 / float(np.sum(w ** 2))
    position_score = min(1.0, effective_n / EFFECTIVE_POSITION_TARGET) * 50

    avg_corr = 0.5
    if correlations is not None and len(symbols) > 1:
        matrix = _matrix_for(symbols, correlations)
        upper = matrix[np.triu_indices(len(symbols), k=1)]
        avg_corr = float(np.mean(np.abs(upper)))

    return _clamp(position_score + (1 - avg_corr) * 50)


def compute_expected_performance(
    weights: Mapping[str, float],
    profiles: Mapping[str, AnalysisProfile],
    correlations: pd.DataFrame | None = None,
    horizon_days: int = 90,
    risk_free_rate: float = 0.02,
) -> ExpectedPerformance:
    """
    Annualised expected performance of an allocation.

    Returns scale the horizon forecast to a year; volatility scales daily
    portfolio risk by sqrt(252); drawdown is estimated as 2.5x volatility.
    """
    symbols = [s for s, w in weights.items() if w > 0 and s in profiles]
    if not symbols:
        return ExpectedPerformance()

    w = np.array([weights[s] for s in symbols])
    annualization = 365 / horizon_days
    expected_return = float(
        sum(weights[s] * profiles[s].predicted_return * annualization for s in symbols)
    )

    vols = np.array([profiles[s].volatility for s in symbols])
    daily_risk = compute_portfolio_risk(w, vols, _matrix_for(symbols, correlations))
    volatility = daily_risk * math.sqrt(TRADING_DAYS)

    sharpe = (expected_return - risk_free_rate) / volatility if volatility > 0 else 0.0

    return ExpectedPerformance(
        expected_return=expected_return,
        expected_volatility=volatility,
        sharpe_ratio=sharpe,
        max_drawdown=volatility * DRAWDOWN_MULTIPLIER,
        diversification_score=compute_allocation_diversification(
            {s: weights[s] for s in symbols}, correlations
        ),
        risk_return_ratio=expected_return / volatility if volatility > 0 else 0.0,
        number_of_positions=len(symbols),
        average_position_size=float(w.mean()),
    )


def compute_turnover_percentage(
    current: Mapping[str, float],
    target: Mapping[str, float],
) -> float:
    """One-way turnover in percent: half the total absolute weight change."""
    symbols = set(current) | set(target)
    total_change = sum(abs(target.get(s, 0.0) - current.get(s, 0.0)) for s in symbols)
    return total_change * 50


def compute_improvement_metrics(
    current: ExpectedPerformance,
    target: ExpectedPerformance,
    current_weights: Mapping[str, float],
    target_weights: Mapping[str, float],
) -> ImprovementMetrics:
    """Compare a target allocation's expected performance with the current one."""
    return_improvement = target.expected_return - current.expected_return
    risk_reduction = current.expected_volatility - target.expected_volatility
    sharpe_improvement = target.sharpe_ratio - current.sharpe_ratio
    diversification_improvement = target.diversification_score - current.diversification_score

    overall = (
        return_improvement * 0.4
        + risk_reduction * 0.2
        + sharpe_improvement * 0.3
        + (diversification_improvement / 100) * 0.1
    ) * 20

    return ImprovementMetrics(
        return_improvement=return_improvement,
        risk_reduction=risk_reduction,
        sharpe_improvement=sharpe_improvement,
        diversification_improvement=diversification_improvement,
        turnover_percentage=compute_turnover_percentage(current_weights, target_weights),
        overall_improvement_score=_clamp(overall),
    )


def compute_recommendation_confidence(profiles: Mapping[str, AnalysisProfile]) -> float:
    """
    Confidence (0-100) in a recommendation.

    Average forecast confidence, discounted when instruments have short
    histories (full credit from 200 data points).
    """
    if not profiles:
        return DEFAULT_CONFIDENCE_SCORE

    avg_confidence = float(np.mean([p.confidence_score for p in profiles.values()])) * 100
    avg_points = float(np.mean([p.data_points for p in profiles.values()]))
    data_quality = min(1.0, avg_points / 200)
    return _clamp(avg_confidence * (0.7 + 0.3 * data_quality))
