"""
Trend signals derived from indicator frames.

Turns the latest indicator frames of an instrument into a ``TrendAnalysis``
(trend direction, momentum, support/resistance, MACD crossovers) and a
technical score in [0, 1] consumed by the multi-factor scorer.
"""

from __future__ import annotations

from typing import Sequence

from stockoptimizer.domain.indicator import IndicatorFrame
from stockoptimizer.quant_engine.types import TrendAnalysis, TrendDirection


MOMENTUM_LOOKBACK = 10
RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0


def compute_momentum(prices: Sequence[float], lookback: int = MOMENTUM_LOOKBACK) -> float:
    """Rate of change over ``lookback`` bars; 0 when history is too short."""
    if len(prices) <= lookback:
        return 0.0
    base = prices[-1 - lookback]
    if base <= 0:
        return 0.0
    return (prices[-1] - base) / base


def find_support_resistance(prices: Sequence[float]) -> tuple[float | None, float | None]:
    """Nearest local minimum below and local maximum above the last price.

    Returns:
        (support, resistance); either is None when no such extreme exists.
    """
    if len(prices) < 3:
        return None, None

    current = prices[-1]
    support: float | None = None
    resistance: float | None = None

    for i in range(1, len(prices) - 1):
        p = prices[i]
        if p < prices[i - 1] and p < prices[i + 1] and p < current:
            if support is None or p > support:
                support = p
        elif p > prices[i - 1] and p > prices[i + 1] and p > current:
            if resistance is None or p < resistance:
                resistance = p

    return support, resistance


def analyze_trend(frames: Sequence[IndicatorFrame]) -> TrendAnalysis:
    """Summarise indicator frames (ascending date order) into a TrendAnalysis."""
    if not frames:
        return TrendAnalysis()

    latest = frames[-1]
    prices = [f.price for f in frames]

    if latest.sma20 > latest.sma50:
        trend = TrendDirection.BULLISH
    elif latest.sma20 < latest.sma50:
        trend = TrendDirection.BEARISH
    else:
        trend = TrendDirection.NEUTRAL

    bullish_crossover = False
    bearish_crossover = False
    if len(frames) >= 2:
        prev_hist = frames[-2].macd_histogram
        bullish_crossover = prev_hist <= 0 < latest.macd_histogram
        bearish_crossover = prev_hist >= 0 > latest.macd_histogram

    support, resistance = find_support_resistance(prices)
    sma200_gap = (latest.price - latest.sma200) / latest.sma200 if latest.sma200 > 0 else 0.0

    return TrendAnalysis(
        trend=trend,
        momentum=compute_momentum(prices),
        support_level=support,
        resistance_level=resistance,
        rsi=latest.rsi14,
        macd_histogram=latest.macd_histogram,
        sma200_gap=sma200_gap,
        bullish_crossover=bullish_crossover,
        bearish_crossover=bearish_crossover,
    )


def compute_technical_score(analysis: TrendAnalysis) -> float:
    """Technical score in [0, 1], 0.5 meaning no technical edge either way."""
    score = 0.5

    if analysis.trend == TrendDirection.BULLISH:
        score += 0.15
    elif analysis.trend == TrendDirection.BEARISH:
        score -= 0.15

    if analysis.sma200_gap > 0:
        score += 0.1
    elif analysis.sma200_gap < 0:
        score -= 0.1

    if analysis.rsi < RSI_OVERSOLD:
        score += 0.1
    elif analysis.rsi > RSI_OVERBOUGHT:
        score -= 0.1

    if analysis.macd_histogram > 0:
        score += 0.1
    elif analysis.macd_histogram < 0:
        score -= 0.1

    if analysis.bullish_crossover:
        score += 0.05
    elif analysis.bearish_crossover:
        score -= 0.05

    return min(1.0, max(0.0, score))
