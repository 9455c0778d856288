"""
Multi-Factor Scoring

Ranks candidate instruments with a linear blend of bounded factors:

    score = w_f * (predicted_return * confidence)
          + w_s * tanh(0.5 * sharpe)
          + w_m * tanh(2 * momentum)
          + w_t * (technical - 0.5)
          - w_v * volatility * (1 - risk_tolerance)
          + w_c * (confidence - 0.5)

Existing holdings receive a continuity bonus and negative scores are
clamped to zero. Raising risk tolerance removes the volatility penalty,
shifting the ranking toward pure return-seeking.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Mapping

from stockoptimizer.core.exceptions import ValidationError
from stockoptimizer.quant_engine.types import AnalysisProfile

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class ScoringWeights:
    """Factor weights of the composite score."""

    forecast: float = 0.3
    sharpe: float = 0.2
    momentum: float = 0.15
    technical: float = 0.15
    volatility: float = 0.2
    confidence: float = 0.1

    holding_bonus: float = 1.1

    # Blend of historical mean daily return and forecast used as mu
    historical_return_weight: float = 0.3
    predicted_return_weight: float = 0.7


DEFAULT_WEIGHTS = ScoringWeights()


def validate_risk_tolerance(risk_tolerance: float) -> float:
    """Ensure risk tolerance is a finite number in [0, 1]."""
    if not isinstance(risk_tolerance, (int, float)) or not math.isfinite(risk_tolerance):
        raise ValidationError(f"risk_tolerance must be a number, got {risk_tolerance!r}")
    if not 0.0 <= risk_tolerance <= 1.0:
        raise ValidationError(
            f"risk_tolerance must be within [0, 1], got {risk_tolerance}",
            details={"risk_tolerance": risk_tolerance},
        )
    return float(risk_tolerance)


# =============================================================================
# SCORING
# =============================================================================

def compute_composite_score(
    profile: AnalysisProfile,
    risk_tolerance: float,
    is_holding: bool = False,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    """
    Composite attractiveness score of one instrument (>= 0).

    Args:
        profile: Analysis profile of the instrument
        risk_tolerance: 0 (risk averse) to 1 (return seeking)
        is_holding: Whether the instrument is already held
        weights: Factor weights

    Returns:
        Non-negative score; larger is more attractive.
    """
    confidence = profile.confidence_score

    score = (
        weights.forecast * (profile.predicted_return * confidence)
        + weights.sharpe * math.tanh(0.5 * profile.sharpe_ratio)
        + weights.momentum * math.tanh(2.0 * profile.momentum_score)
        + weights.technical * (profile.technical_score - 0.5)
        - weights.volatility * profile.volatility * (1.0 - risk_tolerance)
        + weights.confidence * (confidence - 0.5)
    )

    if is_holding:
        score *= weights.holding_bonus

    return max(0.0, score)


def score_candidates(
    profiles: Iterable[AnalysisProfile],
    risk_tolerance: float,
    current_symbols: Iterable[str] = (),
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> dict[str, float]:
    """Composite score per symbol, in input order."""
    risk_tolerance = validate_risk_tolerance(risk_tolerance)
    held = set(current_symbols)
    scores = {
        p.symbol: compute_composite_score(p, risk_tolerance, p.symbol in held, weights)
        for p in profiles
    }
    logger.debug(
        f"Scored {len(scores)} candidates, {sum(1 for s in scores.values() if s > 0)} positive"
    )
    return scores


def compute_expected_return(
    profile: AnalysisProfile,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    """Blend of mean historical daily return and predicted return."""
    return (
        weights.historical_return_weight * profile.mean_historical_return
        + weights.predicted_return_weight * profile.predicted_return
    )


def expected_returns(
    profiles: Mapping[str, AnalysisProfile],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> dict[str, float]:
    return {symbol: compute_expected_return(p, weights) for symbol, p in profiles.items()}
