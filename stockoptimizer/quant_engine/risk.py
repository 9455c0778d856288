"""
Risk Analytics - volatility, Sharpe ratio and correlation structure.

All statistics work on simple daily returns ``r_t = (p_t - p_{t-1}) / p_{t-1}``.
Volatility is the population standard deviation of daily returns, and the
portfolio risk of weights ``w`` is

    sigma_p = sqrt( sum_i sum_j w_i w_j vol_i vol_j rho_ij )
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from stockoptimizer.core.exceptions import InsufficientDataError
from stockoptimizer.quant_engine.types import InsufficientData, ReturnStatistics


logger = logging.getLogger(__name__)

MIN_CORRELATION_POINTS = 30


def compute_daily_returns(prices: Sequence[float] | pd.Series) -> np.ndarray:
    """
    Simple daily returns of a price series.

    Parameters
    ----------
    prices : sequence of float
        Prices in date order. Non-positive prices yield no return for the
        following day.

    Returns
    -------
    np.ndarray
        ``len(prices) - 1`` returns (empty for fewer than two prices).
    """
    arr = np.asarray(prices, dtype=float)
    if arr.size < 2:
        return np.empty(0)
    prev = arr[:-1]
    valid = prev > 0
    returns = np.where(valid, (arr[1:] - prev) / np.where(valid, prev, 1.0), np.nan)
    return returns[~np.isnan(returns)]


def compute_volatility(returns: Sequence[float]) -> float:
    """Population standard deviation of returns (0 for empty input)."""
    arr = np.asarray(returns, dtype=float)
    if arr.size == 0:
        return 0.0
    return float(np.std(arr))


def compute_sharpe_ratio(returns: Sequence[float], daily_risk_free: float) -> float:
    """Daily Sharpe ratio ``(mean - rf) / vol``; 0 when volatility is 0."""
    arr = np.asarray(returns, dtype=float)
    if arr.size == 0:
        return 0.0
    vol = float(np.std(arr))
    if vol == 0:
        return 0.0
    return float((np.mean(arr) - daily_risk_free) / vol)


def compute_return_statistics(
    symbol: str,
    prices: Sequence[float],
    daily_risk_free: float,
    min_points: int = MIN_CORRELATION_POINTS,
    strict: bool = False,
) -> ReturnStatistics | InsufficientData:
    """
    Return statistics, or ``InsufficientData`` when fewer than ``min_points``
    daily returns are available.

    With ``strict`` a short history raises ``InsufficientDataError`` instead.
    """
    returns = compute_daily_returns(prices)
    if returns.size < min_points:
        if strict:
            raise InsufficientDataError(symbol, int(returns.size), min_points)
        return InsufficientData(symbol=symbol, available=int(returns.size), required=min_points)

    return ReturnStatistics(
        returns=tuple(float(r) for r in returns),
        mean_return=float(np.mean(returns)),
        volatility=compute_volatility(returns),
        sharpe_ratio=compute_sharpe_ratio(returns, daily_risk_free),
    )


def compute_pearson_correlation(
    returns_a: Sequence[float],
    returns_b: Sequence[float],
    min_overlap: int = MIN_CORRELATION_POINTS,
) -> float:
    """
    Pearson correlation over the overlapping tail of two return series.

    Both series are trimmed to their common length keeping the most recent
    observations. Fewer than ``min_overlap`` points, or a constant series,
    gives 0.
    """
    a = np.asarray(returns_a, dtype=float)
    b = np.asarray(returns_b, dtype=float)
    n = min(a.size, b.size)
    if n < min_overlap:
        return 0.0

    a = a[-n:]
    b = b[-n:]
    if np.std(a) == 0 or np.std(b) == 0:
        return 0.0

    corr = float(np.corrcoef(a, b)[0, 1])
    if not np.isfinite(corr):
        return 0.0
    return float(np.clip(corr, -1.0, 1.0))


def compute_correlation_matrix(
    returns_by_symbol: Mapping[str, Sequence[float]],
    min_overlap: int = MIN_CORRELATION_POINTS,
) -> pd.DataFrame:
    """
    Symmetric correlation matrix with unit diagonal.

    Parameters
    ----------
    returns_by_symbol : mapping of symbol to daily returns
    min_overlap : int
        Minimum overlapping observations for a non-zero correlation.

    Returns
    -------
    pd.DataFrame
        Indexed and labelled by symbol, in mapping order.
    """
    symbols = list(returns_by_symbol)
    n = len(symbols)
    matrix = np.eye(n)

    for i in range(n):
        for j in range(i + 1, n):
            corr = compute_pearson_correlation(
                returns_by_symbol[symbols[i]],
                returns_by_symbol[symbols[j]],
                min_overlap=min_overlap,
            )
            matrix[i, j] = matrix[j, i] = corr

    return pd.DataFrame(matrix, index=symbols, columns=symbols)


def compute_covariance_matrix(
    volatilities: Sequence[float],
    correlations: np.ndarray | pd.DataFrame,
) -> np.ndarray:
    """Covariance ``vol_i * vol_j * rho_ij`` from volatilities and correlations."""
    vols = np.asarray(volatilities, dtype=float)
    corr = np.asarray(correlations, dtype=float)
    return np.outer(vols, vols) * corr


def compute_portfolio_risk(
    weights: Sequence[float],
    volatilities: Sequence[float],
    correlations: np.ndarray | pd.DataFrame,
) -> float:
    """Portfolio standard deviation of daily returns."""
    w = np.asarray(weights, dtype=float)
    cov = compute_covariance_matrix(volatilities, correlations)
    variance = float(w @ cov @ w)
    return float(np.sqrt(max(variance, 0.0)))
