"""
Technical Indicators Module

Standardized indicator computation used by the indicator store and the
analysis profile builder. All functions are pure: they take a price series
and return series aligned to it, with NaN wherever the indicator is not yet
defined. ``compute_indicator_frames`` applies the documented defaults so the
persisted frames never contain NaN.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from stockoptimizer.core.logging import get_logger
from stockoptimizer.domain.indicator import IndicatorFrame
from stockoptimizer.domain.price import PriceBar


logger = get_logger("quant_engine.indicators")

SMA_WINDOWS = (20, 50, 200)
RSI_WINDOW = 14
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
BOLLINGER_WINDOW = 20
BOLLINGER_STD = 2.0

# Defaults used where an indicator is undefined
RSI_NEUTRAL = 50.0
BOLLINGER_FALLBACK_BAND = 0.02


def _as_series(prices: Sequence[float] | pd.Series) -> pd.Series:
    if isinstance(prices, pd.Series):
        return prices.astype(float)
    return pd.Series(list(prices), dtype=float)


def _seeded_smoothing(values: np.ndarray, window: int, alpha: float) -> np.ndarray:
    """Recursive smoothing seeded with the mean of the first ``window`` values.

    Returns an array of length ``len(values) - window + 1`` whose first entry
    is the seed and whose later entries follow ``s_t = s_{t-1} + alpha * (x_t - s_{t-1})``.
    """
    seeded = values[window - 1:].copy()
    seeded[0] = values[:window].mean()
    return pd.Series(seeded).ewm(alpha=alpha, adjust=False).mean().to_numpy()


# =============================================================================
# Moving Averages
# =============================================================================

def compute_sma(prices: Sequence[float] | pd.Series, window: int) -> pd.Series:
    """Simple Moving Average (NaN for the first ``window - 1`` points)."""
    return _as_series(prices).rolling(window).mean()


def compute_ema(values: Sequence[float] | pd.Series, window: int) -> pd.Series:
    """Exponential Moving Average seeded with an SMA.

    Leading NaN values are skipped, so the EMA of a partially defined series
    (e.g. the MACD line) starts once ``window`` defined points exist.

    Args:
        values: Input series
        window: EMA period

    Returns:
        Series aligned to ``values``; NaN until the seed point.
    """
    series = _as_series(values)
    arr = series.to_numpy(dtype=float)
    out = np.full(arr.shape, np.nan)

    defined_idx = np.flatnonzero(~np.isnan(arr))
    if len(defined_idx) >= window:
        smoothed = _seeded_smoothing(arr[defined_idx], window, alpha=2.0 / (window + 1))
        out[defined_idx[window - 1:]] = smoothed

    return pd.Series(out, index=series.index)


# =============================================================================
# Oscillators
# =============================================================================

def compute_rsi(prices: Sequence[float] | pd.Series, window: int = RSI_WINDOW) -> pd.Series:
    """Relative Strength Index with Wilder smoothing (0-100).

    Average gain and loss are seeded with the mean of the first ``window``
    price changes, then updated as ``avg = (avg * (window - 1) + x) / window``.
    RSI is 100 whenever the average loss is zero.
    """
    series = _as_series(prices)
    arr = series.to_numpy(dtype=float)
    out = np.full(arr.shape, np.nan)

    delta = np.diff(arr)
    if len(delta) >= window:
        gains = np.clip(delta, 0, None)
        losses = np.clip(-delta, 0, None)
        avg_gain = _seeded_smoothing(gains, window, alpha=1.0 / window)
        avg_loss = _seeded_smoothing(losses, window, alpha=1.0 / window)

        with np.errstate(divide="ignore", invalid="ignore"):
            rs = avg_gain / avg_loss
            rsi = np.where(avg_loss == 0, 100.0, 100.0 - 100.0 / (1.0 + rs))
        out[window:] = rsi

    return pd.Series(out, index=series.index)


def compute_macd(
    prices: Sequence[float] | pd.Series,
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
) -> tuple[pd.Series, pd.Series, pd.Series]:
    """MACD line, signal line and histogram."""
    series = _as_series(prices)
    macd_line = compute_ema(series, fast) - compute_ema(series, slow)
    signal_line = compute_ema(macd_line, signal)
    histogram = macd_line - signal_line
    return macd_line, signal_line, histogram


# =============================================================================
# Volatility Bands
# =============================================================================

def compute_bollinger_bands(
    prices: Sequence[float] | pd.Series,
    window: int = BOLLINGER_WINDOW,
    num_std: float = BOLLINGER_STD,
) -> tuple[pd.Series, pd.Series, pd.Series]:
    """Upper, Middle, Lower Bollinger Bands using population standard deviation."""
    series = _as_series(prices)
    middle = series.rolling(window).mean()
    std = series.rolling(window).std(ddof=0)
    upper = middle + num_std * std
    lower = middle - num_std * std
    return upper, middle, lower


# =============================================================================
# Indicator Frames
# =============================================================================

def compute_indicator_frame_table(closes: Sequence[float] | pd.Series) -> pd.DataFrame:
    """Compute every frame column with undefined values replaced by defaults.

    Returns:
        DataFrame with one row per close and the frame's numeric columns.
    """
    price = _as_series(closes).reset_index(drop=True)

    table = pd.DataFrame({"price": price})
    for window in SMA_WINDOWS:
        table[f"sma{window}"] = compute_sma(price, window).fillna(price)

    table["rsi14"] = compute_rsi(price, RSI_WINDOW).fillna(RSI_NEUTRAL)

    macd_line, signal_line, histogram = compute_macd(price)
    table["macd_line"] = macd_line.fillna(0.0)
    table["macd_signal"] = signal_line.fillna(0.0)
    table["macd_histogram"] = histogram.fillna(0.0)

    upper, middle, lower = compute_bollinger_bands(price)
    table["bollinger_upper"] = upper.fillna(price * (1 + BOLLINGER_FALLBACK_BAND))
    table["bollinger_middle"] = middle.fillna(price)
    table["bollinger_lower"] = lower.fillna(price * (1 - BOLLINGER_FALLBACK_BAND))

    return table


def compute_indicator_frames(
    symbol: str,
    bars: Sequence[PriceBar],
    stability_points: int = 100,
) -> list[IndicatorFrame]:
    """Build one IndicatorFrame per bar.

    Args:
        symbol: Ticker symbol
        bars: Price bars in ascending date order
        stability_points: Bars below which long-window indicators fall back
            to defaults for most of the range

    Returns:
        Frames in date order; empty list for empty input.
    """
    if not bars:
        return []

    if len(bars) < stability_points:
        logger.debug(
            f"{symbol}: only {len(bars)} bars, indicators use defaults for the warm-up period"
        )

    table = compute_indicator_frame_table([bar.close for bar in bars])
    records = table.to_dict(orient="records")

    return [
        IndicatorFrame(symbol=symbol, date=bar.date, **record)
        for bar, record in zip(bars, records)
    ]
