"""
Core type definitions for the allocation engine.

Transient engine values are dataclasses; anything persisted or returned
over the API is converted with ``to_dict`` or embedded in a pydantic model.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionType(str, Enum):
    """Trade action type."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class TrendDirection(str, Enum):
    """Short vs medium moving average trend."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class AllocationStrategy(str, Enum):
    """Available allocation strategies."""
    SCORE_PROPORTIONAL = "score_proportional"
    MEAN_VARIANCE = "mean_variance"


@dataclass(frozen=True)
class InsufficientData:
    """Tagged result for computations that lack enough observations."""
    symbol: str
    available: int
    required: int


@dataclass(frozen=True)
class ReturnStatistics:
    """Daily return statistics of one instrument."""
    returns: tuple[float, ...]
    mean_return: float
    volatility: float
    sharpe_ratio: float


@dataclass(frozen=True)
class TrendAnalysis:
    """Technical read of the latest indicator frames."""
    trend: TrendDirection = TrendDirection.NEUTRAL
    momentum: float = 0.0
    support_level: float | None = None
    resistance_level: float | None = None
    rsi: float = 50.0
    macd_histogram: float = 0.0
    sma200_gap: float = 0.0
    bullish_crossover: bool = False
    bearish_crossover: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "trend": self.trend.value,
            "momentum": round(self.momentum, 6),
            "support_level": self.support_level,
            "resistance_level": self.resistance_level,
            "rsi": round(self.rsi, 4),
            "macd_histogram": round(self.macd_histogram, 6),
            "sma200_gap": round(self.sma200_gap, 6),
            "bullish_crossover": self.bullish_crossover,
            "bearish_crossover": self.bearish_crossover,
        }


@dataclass(frozen=True)
class AnalysisProfile:
    """Per-instrument inputs to scoring and optimization.

    ``predicted_return`` and ``confidence_score`` are fractions;
    ``technical_score`` lies in [0, 1].
    """
    symbol: str
    current_price: float
    predicted_price: float
    predicted_return: float
    volatility: float
    sharpe_ratio: float
    confidence_score: float
    momentum_score: float
    technical_score: float
    historical_returns: tuple[float, ...] = ()
    trend: TrendAnalysis = field(default_factory=TrendAnalysis)
    data_points: int = 0

    @property
    def mean_historical_return(self) -> float:
        if not self.historical_returns:
            return 0.0
        return sum(self.historical_returns) / len(self.historical_returns)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "current_price": self.current_price,
            "predicted_price": self.predicted_price,
            "predicted_return": round(self.predicted_return, 6),
            "volatility": round(self.volatility, 6),
            "sharpe_ratio": round(self.sharpe_ratio, 6),
            "confidence_score": round(self.confidence_score, 4),
            "momentum_score": round(self.momentum_score, 6),
            "technical_score": round(self.technical_score, 4),
            "data_points": self.data_points,
            "trend": self.trend.to_dict(),
        }


@dataclass(frozen=True)
class AllocationConstraints:
    """Per-instrument weight bounds."""
    min_weight: float = 0.02
    max_weight: float = 0.25

    def __post_init__(self) -> None:
        if not 0 <= self.min_weight <= self.max_weight <= 1:
            raise ValueError(
                f"Invalid bounds: min={self.min_weight}, max={self.max_weight}"
            )


@dataclass
class AllocationPlan:
    """Target weights produced by the optimizer.

    Weights are non-negative and sum to 1.
    """
    weights: dict[str, float]
    strategy: AllocationStrategy
    risk_tolerance: float
    scores: dict[str, float] = field(default_factory=dict)
    iterations: int = 0
    fallback_used: bool = False
    cap_relaxed: bool = False
    expected_return: float = 0.0

    @property
    def symbols(self) -> list[str]:
        return list(self.weights)

    def to_dict(self) -> dict[str, Any]:
        return {
            "weights": {s: round(w, 6) for s, w in self.weights.items()},
            "strategy": self.strategy.value,
            "risk_tolerance": self.risk_tolerance,
            "scores": {s: round(v, 6) for s, v in self.scores.items()},
            "iterations": self.iterations,
            "fallback_used": self.fallback_used,
            "cap_relaxed": self.cap_relaxed,
            "expected_return": round(self.expected_return, 6),
        }


@dataclass(frozen=True)
class StockAction:
    """One line of an action plan."""
    symbol: str
    action: ActionType
    current_shares: float
    target_shares: int
    share_difference: float
    current_price: float
    current_allocation: float
    target_allocation: float
    estimated_impact: float
    confidence_score: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "action": self.action.value,
            "current_shares": self.current_shares,
            "target_shares": self.target_shares,
            "share_difference": self.share_difference,
            "current_price": self.current_price,
            "current_allocation": round(self.current_allocation, 6),
            "target_allocation": round(self.target_allocation, 6),
            "estimated_impact": round(self.estimated_impact, 2),
            "confidence_score": round(self.confidence_score, 4),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ExpectedPerformance:
    """Annualised forward-looking metrics of an allocation."""
    expected_return: float = 0.0
    expected_volatility: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    diversification_score: float = 0.0
    risk_return_ratio: float = 0.0
    number_of_positions: int = 0
    average_position_size: float = 0.0


@dataclass(frozen=True)
class ImprovementMetrics:
    """Differences between a target allocation and the current one."""
    return_improvement: float = 0.0
    risk_reduction: float = 0.0
    sharpe_improvement: float = 0.0
    diversification_improvement: float = 0.0
    turnover_percentage: float = 0.0
    overall_improvement_score: float = 0.0
