"""
Allocation optimizer with score-proportional and mean-variance strategies.

Mean-variance searches the utility

    U(w) = w' mu - lambda * sqrt( w' Sigma w ),   lambda = 1 - risk_tolerance

by finite-difference gradient ascent from equal weights, projecting the
weights back onto the long-only capped simplex after every step:

    w >= 0,  w_i <= w_max,  sum(w) = 1

The search runs a fixed number of iterations unless a convergence tolerance
is configured. Both strategies finish with ``finalize_weights``, which drops
sub-minimum positions and rescales the survivors inside [w_min, w_max].
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from stockoptimizer.core.config import EngineConfig
from stockoptimizer.core.exceptions import (
    ConstraintInfeasibleError,
    PortfolioStateError,
)
from stockoptimizer.quant_engine.risk import compute_correlation_matrix
from stockoptimizer.quant_engine.scoring import (
    DEFAULT_WEIGHTS,
    ScoringWeights,
    expected_returns,
    score_candidates,
    validate_risk_tolerance,
)
from stockoptimizer.quant_engine.types import (
    AllocationConstraints,
    AllocationPlan,
    AllocationStrategy,
    AnalysisProfile,
)


logger = logging.getLogger(__name__)

BASE_POSITION_COUNT = 5
RISK_AVERSE_EXTRA_POSITIONS = 10
_BISECTION_STEPS = 100


# =============================================================================
# Projections and bounded rescaling
# =============================================================================

def _min_positions_for_cap(max_weight: float) -> int:
    """Smallest number of positions that can sum to 1 under ``max_weight``."""
    return max(1, math.ceil(1.0 / max_weight - 1e-9))


def project_to_capped_simplex(values: np.ndarray, max_weight: float = 1.0) -> np.ndarray:
    """
    Euclidean projection onto ``{w : 0 <= w_i <= max_weight, sum(w) = 1}``.

    Negative entries are clipped to zero and the remainder is shifted by a
    common offset so the weights sum to one. When ``len(values) * max_weight < 1``
    the cap cannot hold and only the long-only simplex is enforced.

    Parameters
    ----------
    values : np.ndarray
        Unconstrained weights.
    max_weight : float
        Per-position cap.

    Returns
    -------
    np.ndarray
        Projected weights.
    """
    v = np.asarray(values, dtype=float)
    n = v.size
    if n == 0:
        return v
    cap = max_weight if n * max_weight >= 1.0 else np.inf

    lo = float(v.min()) - (1.0 if np.isinf(cap) else cap) - 1.0
    hi = float(v.max())
    for _ in range(_BISECTION_STEPS):
        tau = 0.5 * (lo + hi)
        if np.clip(v - tau, 0.0, cap).sum() > 1.0:
            lo = tau
        else:
            hi = tau

    w = np.clip(v - 0.5 * (lo + hi), 0.0, cap)
    total = w.sum()
    return w / total if total > 0 else np.full(n, 1.0 / n)


def bounded_proportional(
    basis: np.ndarray,
    min_weight: float,
    max_weight: float,
) -> np.ndarray:
    """
    Weights proportional to ``basis`` clipped to [min_weight, max_weight].

    Finds the scale ``k`` with ``sum(clip(k * basis, min, max)) = 1`` by
    bisection. Requires ``n * min <= 1 <= n * max``.
    """
    b = np.asarray(basis, dtype=float)
    n = b.size
    if n * min_weight > 1.0 + 1e-12 or n * max_weight < 1.0 - 1e-12:
        raise ConstraintInfeasibleError(
            f"{n} positions cannot satisfy bounds [{min_weight}, {max_weight}]"
        )

    def total(k: float) -> float:
        return float(np.clip(k * b, min_weight, max_weight).sum())

    lo, hi = 0.0, 1.0 / max(b.sum(), 1e-12)
    while total(hi) < 1.0 - 1e-12 and hi < 1e12:
        hi *= 2.0
    for _ in range(_BISECTION_STEPS):
        mid = 0.5 * (lo + hi)
        if total(mid) < 1.0:
            lo = mid
        else:
            hi = mid

    w = np.clip(hi * b, min_weight, max_weight)
    return w / w.sum()


def finalize_weights(
    basis: Mapping[str, float],
    constraints: AllocationConstraints,
) -> tuple[dict[str, float], bool]:
    """
    Turn non-negative allocation preferences into bounded weights.

    Positions whose proportional share falls below ``min_weight`` are dropped;
    the largest dropped positions are restored when too few remain for the
    cap to be satisfiable. If fewer instruments exist than the cap requires,
    the cap is relaxed.

    Returns
    -------
    tuple[dict[str, float], bool]
        Weights by symbol (descending) and whether the cap was relaxed.

    Raises
    ------
    ConstraintInfeasibleError
        No candidate has a positive preference.
    """
    ranked = sorted(
        ((s, float(v)) for s, v in basis.items() if v > 0 and np.isfinite(v)),
        key=lambda item: item[1],
        reverse=True,
    )
    if not ranked:
        raise ConstraintInfeasibleError("No candidate with a positive allocation")

    total = sum(v for _, v in ranked)
    keep = [(s, v) for s, v in ranked if v / total >= constraints.min_weight]

    required = _min_positions_for_cap(constraints.max_weight)
    if len(keep) < required:
        keep = ranked[:required]

    if constraints.min_weight > 0:
        keep = keep[: int(math.floor(1.0 / constraints.min_weight + 1e-9))]

    cap_relaxed = len(keep) * constraints.max_weight < 1.0 - 1e-12
    max_weight = 1.0 if cap_relaxed else constraints.max_weight
    if cap_relaxed:
        logger.warning(
            f"Only {len(keep)} candidates for max weight {constraints.max_weight}; cap relaxed"
        )

    weights = bounded_proportional(
        np.array([v for _, v in keep]),
        min_weight=constraints.min_weight,
        max_weight=max_weight,
    )
    return {s: float(w) for (s, _), w in zip(keep, weights)}, cap_relaxed


# =============================================================================
# Score-proportional strategy
# =============================================================================

def target_position_count(risk_tolerance: float, candidates: int, max_weight: float) -> int:
    """Number of positions to hold: more when risk averse, never fewer than the cap allows."""
    count = int(BASE_POSITION_COUNT + (1.0 - risk_tolerance) * RISK_AVERSE_EXTRA_POSITIONS)
    count = max(count, _min_positions_for_cap(max_weight))
    return min(count, candidates)


def score_proportional_weights(
    scores: Mapping[str, float],
    risk_tolerance: float,
    constraints: AllocationConstraints,
) -> tuple[dict[str, float], bool]:
    """Allocate to the top-ranked candidates in proportion to their scores."""
    ranked = sorted(
        ((s, v) for s, v in scores.items() if v > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    count = target_position_count(risk_tolerance, len(ranked), constraints.max_weight)
    return finalize_weights(dict(ranked[:count]), constraints)


# =============================================================================
# Mean-variance strategy
# =============================================================================

def mean_variance_utility(
    weights: np.ndarray,
    mu: np.ndarray,
    sigma: np.ndarray,
    risk_aversion: float,
) -> np.ndarray:
    """
    Utility ``w'mu - risk_aversion * sqrt(w' Sigma w)``.

    Accepts a single weight vector or a matrix with one candidate per row.
    """
    w = np.atleast_2d(weights)
    ret = w @ mu
    variance = np.einsum("ij,jk,ik->i", w, sigma, w)
    risk = np.sqrt(np.clip(variance, 0.0, None))
    utility = ret - risk_aversion * risk
    return utility if np.ndim(weights) > 1 else utility[0]


def finite_difference_gradient(
    weights: np.ndarray,
    mu: np.ndarray,
    sigma: np.ndarray,
    risk_aversion: float,
    epsilon: float,
) -> np.ndarray:
    """Central-difference gradient of the utility with respect to each weight."""
    bump = np.eye(weights.size) * epsilon
    up = mean_variance_utility(weights + bump, mu, sigma, risk_aversion)
    down = mean_variance_utility(weights - bump, mu, sigma, risk_aversion)
    return (up - down) / (2.0 * epsilon)


def mean_variance_search(
    mu: np.ndarray,
    sigma: np.ndarray,
    risk_aversion: float,
    max_weight: float = 1.0,
    iterations: int = 1000,
    learning_rate: float = 0.01,
    epsilon: float = 0.001,
    tolerance: float | None = None,
) -> tuple[np.ndarray, int]:
    """
    Projected finite-difference gradient ascent from equal weights.

    Parameters
    ----------
    mu : np.ndarray
        Expected returns.
    sigma : np.ndarray
        Covariance matrix.
    risk_aversion : float
        Penalty on portfolio standard deviation.
    max_weight : float
        Per-position cap enforced by the projection.
    iterations : int
        Maximum number of steps.
    learning_rate : float
        Step size.
    epsilon : float
        Finite-difference perturbation.
    tolerance : float, optional
        Stop once no weight moves more than this in a step.

    Returns
    -------
    tuple[np.ndarray, int]
        Weights and the number of steps taken.
    """
    n = mu.size
    w = project_to_capped_simplex(np.full(n, 1.0 / n), max_weight)

    steps = 0
    for steps in range(1, iterations + 1):
        gradient = finite_difference_gradient(w, mu, sigma, risk_aversion, epsilon)
        updated = project_to_capped_simplex(w + learning_rate * gradient, max_weight)
        moved = float(np.max(np.abs(updated - w)))
        w = updated
        if tolerance is not None and moved < tolerance:
            break

    return w, steps


def mean_variance_weights(
    profiles: Mapping[str, AnalysisProfile],
    risk_tolerance: float,
    constraints: AllocationConstraints,
    config: EngineConfig,
    correlations: pd.DataFrame | None = None,
    scoring_weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> tuple[dict[str, float], bool, int]:
    """Run the mean-variance search and finalize the resulting weights."""
    symbols = list(profiles)
    mu_by_symbol = expected_returns(profiles, scoring_weights)
    mu = np.array([mu_by_symbol[s] for s in symbols])
    vols = np.array([profiles[s].volatility for s in symbols])

    if correlations is None:
        correlations = compute_correlation_matrix(
            {s: profiles[s].historical_returns for s in symbols},
            min_overlap=config.min_history_points,
        )
    corr = correlations.loc[symbols, symbols].to_numpy(dtype=float)
    sigma = np.outer(vols, vols) * corr

    raw, steps = mean_variance_search(
        mu,
        sigma,
        risk_aversion=1.0 - risk_tolerance,
        max_weight=constraints.max_weight,
        iterations=config.iterations,
        learning_rate=config.learning_rate,
        epsilon=config.epsilon,
        tolerance=config.tolerance,
    )
    logger.debug(f"Mean-variance search finished after {steps} steps")

    weights, cap_relaxed = finalize_weights(dict(zip(symbols, raw)), constraints)
    return weights, cap_relaxed, steps


# =============================================================================
# Entry point
# =============================================================================

def portfolio_expected_return(
    weights: Mapping[str, float],
    profiles: Mapping[str, AnalysisProfile],
) -> float:
    """Weighted predicted return; symbols without a profile contribute nothing."""
    return float(
        sum(w * profiles[s].predicted_return for s, w in weights.items() if s in profiles)
    )


def equal_weights(symbols: Sequence[str]) -> dict[str, float]:
    unique = list(dict.fromkeys(symbols))
    if not unique:
        return {}
    return {s: 1.0 / len(unique) for s in unique}


def optimize_allocation(
    profiles: Iterable[AnalysisProfile] | Mapping[str, AnalysisProfile],
    risk_tolerance: float,
    strategy: AllocationStrategy = AllocationStrategy.SCORE_PROPORTIONAL,
    current_symbols: Sequence[str] = (),
    constraints: AllocationConstraints | None = None,
    config: EngineConfig | None = None,
    correlations: pd.DataFrame | None = None,
    scoring_weights: ScoringWeights | None = None,
) -> AllocationPlan:
    """
    Produce target weights for the analysed candidates.

    Parameters
    ----------
    profiles : iterable or mapping of AnalysisProfile
        Candidates (current holdings and any expansion symbols).
    risk_tolerance : float
        0 (risk averse) to 1 (return seeking).
    strategy : AllocationStrategy
        Score-proportional ranking or mean-variance search.
    current_symbols : sequence of str
        Symbols currently held; used for the holding bonus and the
        equal-weight fallback.
    constraints : AllocationConstraints, optional
        Defaults to the configured min/max allocation.
    config : EngineConfig, optional
        Search parameters.
    correlations : pd.DataFrame, optional
        Precomputed correlation matrix for mean-variance.

    Returns
    -------
    AllocationPlan

    Raises
    ------
    PortfolioStateError
        There are no candidates and no holdings to fall back to.
    """
    risk_tolerance = validate_risk_tolerance(risk_tolerance)
    config = config or EngineConfig.from_settings()
    constraints = constraints or AllocationConstraints(
        min_weight=config.min_allocation, max_weight=config.max_allocation
    )
    scoring_weights = scoring_weights or ScoringWeights(holding_bonus=config.holding_score_bonus)

    if isinstance(profiles, Mapping):
        by_symbol = dict(profiles)
    else:
        by_symbol = {p.symbol: p for p in profiles}

    scores = score_candidates(by_symbol.values(), risk_tolerance, current_symbols, scoring_weights)

    steps = 0
    cap_relaxed = False
    fallback_used = False
    try:
        if not by_symbol:
            raise ConstraintInfeasibleError("No analysed candidates")
        if strategy == AllocationStrategy.MEAN_VARIANCE:
            weights, cap_relaxed, steps = mean_variance_weights(
                by_symbol, risk_tolerance, constraints, config, correlations, scoring_weights
            )
        else:
            weights, cap_relaxed = score_proportional_weights(scores, risk_tolerance, constraints)
    except ConstraintInfeasibleError as e:
        # Current holdings first, then the analysed candidates themselves.
        weights = equal_weights(current_symbols) or equal_weights(list(by_symbol))
        if not weights:
            raise PortfolioStateError(
                "No allocation candidates and no current holdings to fall back to"
            ) from e
        fallback_used = True
        cap_relaxed = len(weights) * constraints.max_weight < 1.0 - 1e-12
        logger.warning(f"{e.message}; falling back to equal weights over {len(weights)} symbols")

    plan = AllocationPlan(
        weights=weights,
        strategy=strategy,
        risk_tolerance=risk_tolerance,
        scores=scores,
        iterations=steps,
        fallback_used=fallback_used,
        cap_relaxed=cap_relaxed,
        expected_return=portfolio_expected_return(weights, by_symbol),
    )
    logger.info(
        f"Allocation ({strategy.value}, rt={risk_tolerance:.2f}): "
        f"{len(weights)} positions, expected return {plan.expected_return:.4f}"
    )
    return plan
