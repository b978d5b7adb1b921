"""
Tests for resampling confidence intervals.
"""

import numpy as np
import pandas as pd
import pytest

import mgmwm.inference.confidence as confidence
from mgmwm.errors import OptimizationFailure
from mgmwm.estimate import build_fitted
from mgmwm.inference.confidence import confidence_intervals, empirical_bounds, resample_indices
from mgmwm.model import to_unconstrained
from mgmwm.util import get_optim


@pytest.fixture
def fitted(truth, exact_set):
    return build_fitted(truth, exact_set, to_unconstrained(truth, truth.theta), 0.0)


class TestResampleIndices:
    def test_exhaustive_below_limit(self):
        draws, exhaustive = resample_indices(3, 300, seed=1)
        assert exhaustive
        assert len(draws) == 10
        assert len(set(draws)) == 10
        assert all(list(d) == sorted(d) for d in draws)

    def test_random_at_limit(self):
        draws, exhaustive = resample_indices(3, 10, seed=1)
        assert not exhaustive
        assert len(draws) == 10
        assert all(len(d) == 3 and all(0 <= i < 3 for i in d) for d in draws)

    def test_random_above_limit(self):
        draws, exhaustive = resample_indices(6, 300, seed=1)
        assert not exhaustive
        assert len(draws) == 300

    def test_reproducible(self):
        assert resample_indices(6, 50, seed=9) == resample_indices(6, 50, seed=9)
        assert resample_indices(6, 50, seed=9) != resample_indices(6, 50, seed=10)


class TestEmpiricalBounds:
    def test_quantiles(self):
        distrib = np.arange(1.0, 102.0).reshape(-1, 1)
        low, high = empirical_bounds(distrib, np.array([50.0]), alpha=0.1)
        assert low[0] == pytest.approx(6.0)
        assert high[0] == pytest.approx(96.0)

    def test_widened_to_contain_estimate(self):
        distrib = np.array([[1.0, -2.0], [2.0, -1.0], [3.0, 0.0]])
        low, high = empirical_bounds(distrib, np.array([5.0, -4.0]), alpha=0.5)
        assert low[0] == pytest.approx(1.5) and high[0] == 5.0
        assert low[1] == -4.0 and high[1] == pytest.approx(-0.5)


class TestConfidenceIntervals:
    def test_exact_replicates(self, fitted, exact_set, truth):
        ci = confidence_intervals(fitted, exact_set)
        assert ci.exhaustive
        assert ci.resamples == ((0, 0), (0, 1), (1, 1))
        assert ci.n_draws == 3
        assert list(ci.distrib_param.columns) == ["AR1", "SIGMA2", "WN"]
        assert ci.low.name == "CI Low" and ci.high.name == "CI High"
        assert np.all(ci.low.to_numpy() <= fitted.theta)
        assert np.all(fitted.theta <= ci.high.to_numpy())
        np.testing.assert_allclose(ci.distrib_param.to_numpy(), np.tile(truth.theta, (3, 1)), rtol=1e-2)
        assert ci.failed == ()

    def test_failed_draws_are_reported(self, fitted, exact_set, monkeypatch):
        def flaky(x0, obj, model, subset):
            if subset[0] is subset[1]:
                raise OptimizationFailure("stalled")
            return get_optim(x0, obj, model, subset)

        monkeypatch.setattr(confidence, "get_optim", flaky)
        ci = confidence_intervals(fitted, exact_set)
        assert ci.n_draws == 3
        assert [i for i, _ in ci.failed] == [0, 2]
        assert ci.distrib_param.iloc[[0, 2]].isna().all().all()
        assert ci.distrib_param.iloc[1].notna().all()
        assert np.all(np.isfinite(ci.low)) and np.all(np.isfinite(ci.high))

    def test_every_draw_failing(self, fitted, exact_set, monkeypatch):
        def broken(x0, obj, model, subset):
            raise OptimizationFailure("stalled")

        monkeypatch.setattr(confidence, "get_optim", broken)
        with pytest.raises(OptimizationFailure):
            confidence_intervals(fitted, exact_set)

    def test_random_draws_do_not_depend_on_workers(self, fitted, exact_set):
        serial = confidence_intervals(fitted, exact_set, n_boot_ci_max=3, seed=5)
        pooled = confidence_intervals(fitted, exact_set, n_boot_ci_max=3, seed=5, n_jobs=2)
        assert not serial.exhaustive
        assert serial.resamples == pooled.resamples
        pd.testing.assert_frame_equal(serial.distrib_param, pooled.distrib_param)
        pd.testing.assert_series_equal(serial.low, pooled.low)
