"""Tests for trend signals and multi-factor scoring."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import START_DATE, make_profile


def _frame(day: int, price: float, **values):
    from stockoptimizer.domain.indicator import IndicatorFrame

    fields = dict(
        symbol="AAPL",
        date=START_DATE + timedelta(days=day),
        price=price,
        sma20=price,
        sma50=price,
        sma200=price,
        rsi14=50.0,
        macd_line=0.0,
        macd_signal=0.0,
        macd_histogram=0.0,
        bollinger_upper=price * 1.02,
        bollinger_middle=price,
        bollinger_lower=price * 0.98,
    )
    fields.update(values)
    return IndicatorFrame(**fields)


class TestMomentumAndLevels:
    def test_momentum_is_rate_of_change(self):
        from stockoptimizer.quant_engine.signals import compute_momentum

        prices = [100.0] * 5 + [100.0 + i for i in range(11)]

        assert compute_momentum(prices) == pytest.approx((110.0 - 100.0) / 100.0)

    def test_momentum_short_history(self):
        from stockoptimizer.quant_engine.signals import compute_momentum

        assert compute_momentum([100.0] * 10) == 0.0

    def test_support_and_resistance(self):
        from stockoptimizer.quant_engine.signals import find_support_resistance

        prices = [100, 95, 102, 90, 110, 104, 100]

        support, resistance = find_support_resistance(prices)

        assert support == 95
        assert resistance == 102

    def test_no_extremes(self):
        from stockoptimizer.quant_engine.signals import find_support_resistance

        assert find_support_resistance([1, 2, 3, 4]) == (None, None)
        assert find_support_resistance([1, 2]) == (None, None)


class TestTrendAnalysis:
    def test_empty_frames_are_neutral(self):
        from stockoptimizer.quant_engine.signals import analyze_trend
        from stockoptimizer.quant_engine.types import TrendDirection

        analysis = analyze_trend([])

        assert analysis.trend == TrendDirection.NEUTRAL
        assert analysis.rsi == 50.0

    def test_bullish_crossover(self):
        from stockoptimizer.quant_engine.signals import analyze_trend
        from stockoptimizer.quant_engine.types import TrendDirection

        frames = [
            _frame(0, 100.0, macd_histogram=-0.2),
            _frame(1, 105.0, sma20=104.0, sma50=101.0, sma200=95.0, macd_histogram=0.3),
        ]

        analysis = analyze_trend(frames)

        assert analysis.trend == TrendDirection.BULLISH
        assert analysis.bullish_crossover
        assert not analysis.bearish_crossover
        assert analysis.sma200_gap == pytest.approx(10.0 / 95.0)

    def test_bearish_trend(self):
        from stockoptimizer.quant_engine.signals import analyze_trend
        from stockoptimizer.quant_engine.types import TrendDirection

        frames = [
            _frame(0, 100.0, macd_histogram=0.1),
            _frame(1, 90.0, sma20=92.0, sma50=96.0, macd_histogram=-0.1),
        ]

        analysis = analyze_trend(frames)

        assert analysis.trend == TrendDirection.BEARISH
        assert analysis.bearish_crossover


class TestTechnicalScore:
    def test_neutral_is_half(self):
        from stockoptimizer.quant_engine.signals import compute_technical_score
        from stockoptimizer.quant_engine.types import TrendAnalysis

        assert compute_technical_score(TrendAnalysis()) == 0.5

    def test_all_bullish_signals_clamped(self):
        from stockoptimizer.quant_engine.signals import compute_technical_score
        from stockoptimizer.quant_engine.types import TrendAnalysis, TrendDirection

        analysis = TrendAnalysis(
            trend=TrendDirection.BULLISH,
            rsi=25.0,
            macd_histogram=0.5,
            sma200_gap=0.1,
            bullish_crossover=True,
        )

        assert compute_technical_score(analysis) == pytest.approx(1.0)

    def test_bearish_signals(self):
        from stockoptimizer.quant_engine.signals import compute_technical_score
        from stockoptimizer.quant_engine.types import TrendAnalysis, TrendDirection

        analysis = TrendAnalysis(
            trend=TrendDirection.BEARISH,
            rsi=80.0,
            macd_histogram=-0.5,
            sma200_gap=-0.1,
        )

        assert compute_technical_score(analysis) == pytest.approx(0.05)


class TestCompositeScore:
    """Blend of forecast, sharpe, momentum, technicals, volatility and confidence."""

    def test_holding_scores(self):
        from stockoptimizer.quant_engine.scoring import score_candidates

        scores = score_candidates(
            [make_profile("AAPL", 0.08, 0.02), make_profile("MSFT", -0.04, 0.015)],
            risk_tolerance=0.5,
            current_symbols=["AAPL", "MSFT"],
        )

        assert scores["AAPL"] == pytest.approx(0.05192)
        assert scores["MSFT"] == pytest.approx(0.02079)

    def test_holding_bonus(self):
        from stockoptimizer.quant_engine.scoring import compute_composite_score

        profile = make_profile("AAPL", 0.08, 0.02)

        held = compute_composite_score(profile, 0.5, is_holding=True)
        new = compute_composite_score(profile, 0.5, is_holding=False)

        assert held == pytest.approx(new * 1.1)

    def test_negative_scores_clamped(self):
        from stockoptimizer.quant_engine.scoring import compute_composite_score

        profile = make_profile("XYZ", -0.5, 0.1, confidence_score=0.2, technical_score=0.0)

        assert compute_composite_score(profile, 0.0) == 0.0

    def test_volatility_penalty_shrinks_with_tolerance(self):
        from stockoptimizer.quant_engine.scoring import compute_composite_score

        profile = make_profile("AAPL", 0.05, 0.05)

        assert compute_composite_score(profile, 0.0) < compute_composite_score(profile, 1.0)

    @pytest.mark.parametrize("risk_tolerance", [-0.1, 1.5, float("nan")])
    def test_invalid_risk_tolerance(self, risk_tolerance):
        from stockoptimizer.core.exceptions import ValidationError
        from stockoptimizer.quant_engine.scoring import score_candidates

        with pytest.raises(ValidationError):
            score_candidates([make_profile("AAPL", 0.05, 0.02)], risk_tolerance)

    def test_expected_return_blend(self):
        from stockoptimizer.quant_engine.scoring import compute_expected_return

        profile = make_profile("AAPL", 0.1, 0.02, historical_returns=(0.01, 0.03))

        assert compute_expected_return(profile) == pytest.approx(0.3 * 0.02 + 0.7 * 0.1)
