"""
Quantitative Allocation Engine
==============================

Forecast-aware, multi-factor portfolio allocation.

The engine combines technical indicators, historical risk statistics and an
external price forecast into a composite score per instrument, then turns
the scores into target weights:

- Indicators: SMA, EMA, Wilder RSI, MACD and Bollinger bands with explicit
  cold-start fallbacks (every frame is fully populated)
- Risk: daily returns, volatility, Sharpe ratio, correlation matrix
- Signals: trend, momentum, support/resistance and a technical score
- Scoring: weighted factor blend with a holding bonus
- Optimizer: score-proportional ranking or mean-variance gradient search
- Analytics: diversification, risk score and expected performance

Modules
-------
- indicators: Indicator series and frames
- risk: Return statistics and correlations
- signals: Trend analysis and technical score
- scoring: Composite scores and expected returns
- optimizer: Allocation strategies and weight finalization
- analytics: Portfolio-level scores and comparisons

Allocation Strategies
---------------------
- SCORE_PROPORTIONAL: Top-N candidates weighted by score
- MEAN_VARIANCE: Maximise w'mu - (1 - risk_tolerance) * portfolio risk
"""

from __future__ import annotations

__version__ = "1.0.0"

# Indicators
from stockoptimizer.quant_engine.indicators import (
    compute_bollinger_bands,
    compute_ema,
    compute_indicator_frames,
    compute_macd,
    compute_rsi,
    compute_sma,
)

# Risk
from stockoptimizer.quant_engine.risk import (
    compute_correlation_matrix,
    compute_daily_returns,
    compute_pearson_correlation,
    compute_portfolio_risk,
    compute_return_statistics,
    compute_sharpe_ratio,
    compute_volatility,
)

# Signals and scoring
from stockoptimizer.quant_engine.scoring import (
    ScoringWeights,
    compute_composite_score,
    score_candidates,
)
from stockoptimizer.quant_engine.signals import analyze_trend, compute_technical_score

# Optimizer
from stockoptimizer.quant_engine.optimizer import optimize_allocation

# Analytics
from stockoptimizer.quant_engine.analytics import (
    compute_diversification_score,
    compute_expected_performance,
    compute_risk_score,
)

# Types
from stockoptimizer.quant_engine.types import (
    ActionType,
    AllocationConstraints,
    AllocationPlan,
    AllocationStrategy,
    AnalysisProfile,
    InsufficientData,
    StockAction,
    TrendAnalysis,
    TrendDirection,
)

__all__ = [
    # Indicators
    "compute_bollinger_bands",
    "compute_ema",
    "compute_indicator_frames",
    "compute_macd",
    "compute_rsi",
    "compute_sma",
    # Risk
    "compute_correlation_matrix",
    "compute_daily_returns",
    "compute_pearson_correlation",
    "compute_portfolio_risk",
    "compute_return_statistics",
    "compute_sharpe_ratio",
    "compute_volatility",
    # Signals and scoring
    "ScoringWeights",
    "analyze_trend",
    "compute_composite_score",
    "compute_technical_score",
    "score_candidates",
    # Optimizer
    "optimize_allocation",
    # Analytics
    "compute_diversification_score",
    "compute_expected_performance",
    "compute_risk_score",
    # Types
    "ActionType",
    "AllocationConstraints",
    "AllocationPlan",
    "AllocationStrategy",
    "AnalysisProfile",
    "InsufficientData",
    "StockAction",
    "TrendAnalysis",
    "TrendDirection",
]
