"""Tests for portfolio analytics."""

from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from conftest import make_portfolio, make_profile


@pytest.fixture
def balanced():
    return make_portfolio("p1", {"AAPL": (100, 150.0), "MSFT": (50, 300.0)})


class TestPortfolioScores:
    def test_diversification_score(self, balanced):
        from stockoptimizer.quant_engine.analytics import compute_diversification_score

        # 2 of 20 positions -> 5, HHI 0.5 -> 25
        assert compute_diversification_score(balanced) == pytest.approx(30.0)

    def test_diversification_empty(self):
        from stockoptimizer.quant_engine.analytics import compute_diversification_score

        assert compute_diversification_score(make_portfolio("p0", {})) == 0.0

    def test_risk_score_without_correlations(self, balanced):
        from stockoptimizer.quant_engine.analytics import compute_risk_score

        score = compute_risk_score(balanced, {"AAPL": 0.02, "MSFT": 0.02}, max_daily_risk=0.03)

        assert score == pytest.approx(200.0 / 3.0)

    def test_risk_score_with_correlations(self, balanced):
        from stockoptimizer.quant_engine.analytics import compute_risk_score

        correlations = pd.DataFrame(np.eye(2), index=["AAPL", "MSFT"], columns=["AAPL", "MSFT"])

        score = compute_risk_score(
            balanced, {"AAPL": 0.02, "MSFT": 0.02}, correlations, max_daily_risk=0.03
        )

        assert score == pytest.approx(math.sqrt(0.0002) / 0.03 * 100)

    def test_risk_score_clamped(self, balanced):
        from stockoptimizer.quant_engine.analytics import compute_risk_score

        assert compute_risk_score(balanced, {"AAPL": 0.2, "MSFT": 0.2}) == 100.0

    def test_risk_score_defaults(self, balanced):
        from stockoptimizer.quant_engine.analytics import DEFAULT_RISK_SCORE, compute_risk_score

        assert compute_risk_score(balanced, {}) == DEFAULT_RISK_SCORE
        assert compute_risk_score(make_portfolio("p0", {}), {"AAPL": 0.02}) == DEFAULT_RISK_SCORE


class TestAllocationAnalytics:
    def test_allocation_diversification(self):
        from stockoptimizer.quant_engine.analytics import compute_allocation_diversification

        weights = {"A": 0.25, "B": 0.25, "C": 0.25, "D": 0.25}

        assert compute_allocation_diversification(weights) == pytest.approx(45.0)

    def test_expected_performance(self):
        from stockoptimizer.quant_engine.analytics import compute_expected_performance

        perf = compute_expected_performance(
            {"AAPL": 1.0},
            {"AAPL": make_profile("AAPL", 0.09, 0.01)},
            horizon_days=90,
            risk_free_rate=0.02,
        )

        expected_return = 0.09 * 365 / 90
        volatility = 0.01 * math.sqrt(252)
        assert perf.expected_return == pytest.approx(expected_return)
        assert perf.expected_volatility == pytest.approx(volatility)
        assert perf.sharpe_ratio == pytest.approx((expected_return - 0.02) / volatility)
        assert perf.max_drawdown == pytest.approx(volatility * 2.5)
        assert perf.number_of_positions == 1

    def test_expected_performance_without_profiles(self):
        from stockoptimizer.quant_engine.analytics import compute_expected_performance
        from stockoptimizer.quant_engine.types import ExpectedPerformance

        assert compute_expected_performance({"AAPL": 1.0}, {}) == ExpectedPerformance()

    def test_turnover(self):
        from stockoptimizer.quant_engine.analytics import compute_turnover_percentage

        assert compute_turnover_percentage({"A": 0.5, "B": 0.5}, {"A": 1.0}) == pytest.approx(50.0)
        assert compute_turnover_percentage({"A": 1.0}, {"A": 1.0}) == 0.0

    def test_improvement_metrics(self):
        from stockoptimizer.quant_engine.analytics import compute_improvement_metrics
        from stockoptimizer.quant_engine.types import ExpectedPerformance

        current = ExpectedPerformance(expected_return=0.1, expected_volatility=0.2, sharpe_ratio=0.4)
        target = ExpectedPerformance(expected_return=0.2, expected_volatility=0.15, sharpe_ratio=1.2)

        metrics = compute_improvement_metrics(current, target, {"A": 1.0}, {"A": 0.5, "B": 0.5})

        assert metrics.return_improvement == pytest.approx(0.1)
        assert metrics.risk_reduction == pytest.approx(0.05)
        assert metrics.sharpe_improvement == pytest.approx(0.8)
        assert metrics.turnover_percentage == pytest.approx(50.0)
        assert 0 <= metrics.overall_improvement_score <= 100

    def test_confidence_discounted_for_short_history(self):
        from stockoptimizer.quant_engine.analytics import compute_recommendation_confidence

        long_history = {"A": make_profile("A", 0.05, 0.01, data_points=250)}
        short_history = {"A": make_profile("A", 0.05, 0.01, data_points=100)}

        assert compute_recommendation_confidence(long_history) == pytest.approx(80.0)
        assert compute_recommendation_confidence(short_history) == pytest.approx(68.0)
        assert compute_recommendation_confidence({}) == 60.0
