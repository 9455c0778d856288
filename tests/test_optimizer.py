"""Tests for the allocation optimizer."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from conftest import make_profile


def _identity(symbols):
    return pd.DataFrame(np.eye(len(symbols)), index=symbols, columns=symbols)


class TestProjection:
    def test_cap_binds(self):
        from stockoptimizer.quant_engine.optimizer import project_to_capped_simplex

        w = project_to_capped_simplex(np.array([0.5, 0.5, 0.5, 0.5]), max_weight=0.25)

        assert w == pytest.approx([0.25] * 4)

    def test_negative_entries_clipped(self):
        from stockoptimizer.quant_engine.optimizer import project_to_capped_simplex

        w = project_to_capped_simplex(np.array([1.5, -0.2, 0.0]), max_weight=1.0)

        assert w == pytest.approx([1.0, 0.0, 0.0])

    def test_infeasible_cap_enforces_simplex_only(self):
        from stockoptimizer.quant_engine.optimizer import project_to_capped_simplex

        w = project_to_capped_simplex(np.array([0.3, 0.1]), max_weight=0.25)

        assert w == pytest.approx([0.6, 0.4])


class TestFinalizeWeights:
    """Dropping, backfilling and bounded rescaling."""

    def test_drops_sub_minimum_positions(self):
        from stockoptimizer.quant_engine.optimizer import finalize_weights
        from stockoptimizer.quant_engine.types import AllocationConstraints

        weights, relaxed = finalize_weights(
            {"A": 10.0, "B": 10.0, "C": 10.0, "D": 10.0, "E": 0.1},
            AllocationConstraints(min_weight=0.02, max_weight=0.25),
        )

        assert "E" not in weights
        assert weights == pytest.approx({"A": 0.25, "B": 0.25, "C": 0.25, "D": 0.25})
        assert not relaxed

    def test_backfills_to_satisfy_cap(self):
        from stockoptimizer.quant_engine.optimizer import finalize_weights
        from stockoptimizer.quant_engine.types import AllocationConstraints

        weights, relaxed = finalize_weights(
            {"A": 100.0, "B": 1.0, "C": 1.0, "D": 1.0},
            AllocationConstraints(min_weight=0.02, max_weight=0.25),
        )

        assert set(weights) == {"A", "B", "C", "D"}
        assert sum(weights.values()) == pytest.approx(1.0)
        assert max(weights.values()) <= 0.25 + 1e-9
        assert not relaxed

    def test_relaxes_cap_with_too_few_candidates(self):
        from stockoptimizer.quant_engine.optimizer import finalize_weights
        from stockoptimizer.quant_engine.types import AllocationConstraints

        weights, relaxed = finalize_weights(
            {"A": 3.0, "B": 1.0},
            AllocationConstraints(min_weight=0.02, max_weight=0.25),
        )

        assert relaxed
        assert weights == pytest.approx({"A": 0.75, "B": 0.25})

    def test_no_positive_candidate(self):
        from stockoptimizer.core.exceptions import ConstraintInfeasibleError
        from stockoptimizer.quant_engine.optimizer import finalize_weights
        from stockoptimizer.quant_engine.types import AllocationConstraints

        with pytest.raises(ConstraintInfeasibleError):
            finalize_weights({"A": 0.0, "B": -1.0}, AllocationConstraints())

    def test_bounded_proportional_rejects_infeasible_bounds(self):
        from stockoptimizer.core.exceptions import ConstraintInfeasibleError
        from stockoptimizer.quant_engine.optimizer import bounded_proportional

        with pytest.raises(ConstraintInfeasibleError):
            bounded_proportional(np.array([1.0, 1.0, 1.0]), min_weight=0.0, max_weight=0.25)


class TestScoreProportional:
    def test_position_count(self):
        from stockoptimizer.quant_engine.optimizer import target_position_count

        assert target_position_count(1.0, 8, 0.25) == 5
        assert target_position_count(0.0, 20, 0.25) == 15
        assert target_position_count(0.5, 3, 0.25) == 3
        assert target_position_count(1.0, 8, 0.1) == 8

    def test_weights_closed_and_bounded(self):
        from stockoptimizer.core.config import EngineConfig
        from stockoptimizer.quant_engine.optimizer import optimize_allocation
        from stockoptimizer.quant_engine.types import AllocationStrategy

        profiles = [
            make_profile(symbol, ret, 0.015)
            for symbol, ret in [
                ("AAPL", 0.12),
                ("MSFT", 0.09),
                ("NVDA", 0.2),
                ("JPM", 0.04),
                ("V", 0.06),
                ("PG", 0.02),
            ]
        ]

        plan = optimize_allocation(
            profiles,
            risk_tolerance=0.5,
            strategy=AllocationStrategy.SCORE_PROPORTIONAL,
            config=EngineConfig(),
        )

        assert sum(plan.weights.values()) == pytest.approx(1.0)
        assert all(0.02 - 1e-9 <= w <= 0.25 + 1e-9 for w in plan.weights.values())
        assert not plan.fallback_used
        assert not plan.cap_relaxed
        assert plan.weights["NVDA"] >= plan.weights["PG"]

    def test_two_holding_scenario(self):
        from stockoptimizer.core.config import EngineConfig
        from stockoptimizer.quant_engine.optimizer import optimize_allocation

        plan = optimize_allocation(
            [make_profile("AAPL", 0.08, 0.02), make_profile("MSFT", -0.04, 0.015)],
            risk_tolerance=0.5,
            current_symbols=["AAPL", "MSFT"],
            config=EngineConfig(),
        )

        assert plan.cap_relaxed
        assert plan.weights["AAPL"] == pytest.approx(0.05192 / 0.07271, abs=1e-4)
        assert plan.weights["MSFT"] == pytest.approx(0.02079 / 0.07271, abs=1e-4)


class TestFallback:
    @staticmethod
    def _unattractive(symbol):
        return make_profile(symbol, -0.5, 0.1, confidence_score=0.2, technical_score=0.0)

    def test_equal_weight_holdings_when_nothing_scores(self):
        from stockoptimizer.core.config import EngineConfig
        from stockoptimizer.quant_engine.optimizer import optimize_allocation

        plan = optimize_allocation(
            [self._unattractive("AAPL"), self._unattractive("MSFT")],
            risk_tolerance=0.0,
            current_symbols=["AAPL", "MSFT"],
            config=EngineConfig(),
        )

        assert plan.fallback_used
        assert plan.weights == {"AAPL": 0.5, "MSFT": 0.5}

    def test_equal_weight_candidates_without_holdings(self):
        from stockoptimizer.core.config import EngineConfig
        from stockoptimizer.quant_engine.optimizer import optimize_allocation

        plan = optimize_allocation(
            [make_profile("AAPL", -0.15, 0.05), make_profile("MSFT", -0.10, 0.04)],
            0.0,
            config=EngineConfig(),
        )

        assert plan.fallback_used
        assert plan.cap_relaxed
        assert plan.weights == {"AAPL": 0.5, "MSFT": 0.5}

    def test_single_unattractive_candidate(self):
        from stockoptimizer.core.config import EngineConfig
        from stockoptimizer.quant_engine.optimizer import optimize_allocation

        plan = optimize_allocation([self._unattractive("AAPL")], 0.0, config=EngineConfig())

        assert plan.weights == {"AAPL": 1.0}
        assert plan.fallback_used

    def test_no_candidates_at_all(self):
        from stockoptimizer.core.config import EngineConfig
        from stockoptimizer.core.exceptions import PortfolioStateError
        from stockoptimizer.quant_engine.optimizer import optimize_allocation

        with pytest.raises(PortfolioStateError):
            optimize_allocation([], 0.5, config=EngineConfig())


class TestMeanVariance:
    """Projected finite-difference search."""

    SYMBOLS = ["HIGH", "MID", "LOW"]

    def _profiles(self):
        return [
            make_profile("HIGH", 0.10, 0.05),
            make_profile("MID", 0.05, 0.02),
            make_profile("LOW", 0.01, 0.005),
        ]

    def _config(self, **overrides):
        from stockoptimizer.core.config import EngineConfig

        values = dict(
            iterations=2000,
            learning_rate=1.0,
            min_allocation=0.0,
            max_allocation=1.0,
        )
        values.update(overrides)
        return EngineConfig(**values)

    def _plan(self, risk_tolerance, **overrides):
        from stockoptimizer.quant_engine.optimizer import optimize_allocation
        from stockoptimizer.quant_engine.types import AllocationStrategy

        return optimize_allocation(
            self._profiles(),
            risk_tolerance,
            strategy=AllocationStrategy.MEAN_VARIANCE,
            config=self._config(**overrides),
            correlations=_identity(self.SYMBOLS),
        )

    def test_return_seeking_concentrates_on_best_return(self):
        plan = self._plan(1.0)

        assert plan.weights == pytest.approx({"HIGH": 1.0})
        assert plan.iterations == 2000

    def test_expected_return_monotonic_in_risk_tolerance(self):
        returns = [self._plan(rt).expected_return for rt in (0.0, 0.5, 1.0)]

        assert returns[0] <= returns[1] + 1e-3
        assert returns[1] <= returns[2] + 1e-3
        assert returns[0] < returns[2]

    def test_weights_sum_to_one(self):
        for rt in (0.0, 0.25, 0.75):
            plan = self._plan(rt)
            assert sum(plan.weights.values()) == pytest.approx(1.0)
            assert all(w >= 0 for w in plan.weights.values())

    def test_tolerance_stops_early(self):
        plan = self._plan(1.0, tolerance=1e-9)

        assert plan.iterations < 2000
        assert plan.weights == pytest.approx({"HIGH": 1.0})

    def test_cap_respected(self):
        from stockoptimizer.quant_engine.optimizer import optimize_allocation
        from stockoptimizer.quant_engine.types import AllocationStrategy

        symbols = ["A", "B", "C", "D", "E"]
        profiles = [make_profile(s, 0.02 * (i + 1), 0.01) for i, s in enumerate(symbols)]

        plan = optimize_allocation(
            profiles,
            1.0,
            strategy=AllocationStrategy.MEAN_VARIANCE,
            config=self._config(max_allocation=0.25, min_allocation=0.02),
            correlations=_identity(symbols),
        )

        assert sum(plan.weights.values()) == pytest.approx(1.0)
        assert max(plan.weights.values()) <= 0.25 + 1e-6
        assert len(plan.weights) >= 4

    def test_utility_matches_closed_form(self):
        from stockoptimizer.quant_engine.optimizer import mean_variance_utility

        mu = np.array([0.1, 0.05])
        sigma = np.diag([0.04, 0.01])
        w = np.array([0.5, 0.5])

        expected = 0.075 - 0.5 * np.sqrt(0.25 * 0.04 + 0.25 * 0.01)

        assert mean_variance_utility(w, mu, sigma, 0.5) == pytest.approx(expected)


def _random_profiles(rng: np.random.Generator, count: int):
    profiles = []
    for i in range(count):
        vol = float(rng.uniform(0.005, 0.05))
        profiles.append(
            make_profile(
                f"S{i}",
                float(rng.uniform(-0.3, 0.3)),
                vol,
                confidence_score=float(rng.uniform(0.1, 1.0)),
                technical_score=float(rng.uniform(0.0, 1.0)),
                momentum_score=float(rng.uniform(-0.2, 0.2)),
                sharpe_ratio=float(rng.uniform(-0.2, 0.2)),
                historical_returns=tuple(rng.normal(0.0005, vol, 60).tolist()),
            )
        )
    return profiles


class TestAllocationProperties:
    """Seeded sweeps over random instrument sets."""

    RISK_TOLERANCES = (0.0, 0.25, 0.5, 0.75, 1.0)

    @pytest.mark.parametrize("strategy", ["score_proportional", "mean_variance"])
    def test_weights_closed_over_random_sets(self, strategy):
        from stockoptimizer.core.config import EngineConfig
        from stockoptimizer.quant_engine.optimizer import optimize_allocation
        from stockoptimizer.quant_engine.types import AllocationStrategy

        config = EngineConfig(iterations=50, learning_rate=0.05)

        for seed in range(120):
            rng = np.random.default_rng(seed)
            profiles = _random_profiles(rng, int(rng.integers(1, 10)))
            held = [p.symbol for p in profiles[: int(rng.integers(0, 3))]]

            for rt in self.RISK_TOLERANCES:
                plan = optimize_allocation(
                    profiles,
                    rt,
                    strategy=AllocationStrategy(strategy),
                    current_symbols=held,
                    config=config,
                )

                weights = list(plan.weights.values())
                assert weights, (seed, rt)
                assert all(w >= 0 for w in weights), (seed, rt)
                assert sum(weights) == pytest.approx(1.0, abs=1e-6), (seed, rt)
                if not plan.cap_relaxed:
                    assert max(weights) <= config.max_allocation + 1e-6, (seed, rt)

    def test_return_seeking_maximizes_expected_return(self):
        """With lambda = 0 the search reaches the capped top-return vertex,
        which no other risk tolerance can beat."""
        from stockoptimizer.core.config import EngineConfig
        from stockoptimizer.quant_engine.optimizer import optimize_allocation
        from stockoptimizer.quant_engine.types import AllocationStrategy

        config = EngineConfig(iterations=200, learning_rate=1.0, tolerance=1e-9)

        for seed in range(30):
            rng = np.random.default_rng(1000 + seed)
            count = int(rng.integers(5, 9))
            # Predicted returns spaced 3% apart; no history, so mu ranks like them.
            predicted = rng.permutation(count) * 0.03 + float(rng.uniform(-0.1, 0.0))
            profiles = [
                make_profile(f"S{i}", float(r), float(rng.uniform(0.005, 0.05)))
                for i, r in enumerate(predicted)
            ]
            best = 0.25 * float(np.sort(predicted)[-4:].sum())

            returns = {
                rt: optimize_allocation(
                    profiles, rt, strategy=AllocationStrategy.MEAN_VARIANCE, config=config
                ).expected_return
                for rt in self.RISK_TOLERANCES
            }

            assert returns[1.0] == pytest.approx(best, abs=1e-9), seed
            for rt, value in returns.items():
                assert value <= returns[1.0] + 1e-9, (seed, rt)
