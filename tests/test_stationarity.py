"""
Tests for the parametric-bootstrap near-stationarity test.
"""

import numpy as np
import pytest
from scipy.optimize import OptimizeResult

import mgmwm.inference.stationarity as stationarity
from mgmwm.data import make_replicates
from mgmwm.errors import OptimizationFailure
from mgmwm.estimate import build_fitted, fit_model
from mgmwm.inference.stationarity import (
    NEARLY_STATIONARY,
    STATIONARY,
    decide,
    near_stationarity_test,
    p_value_from_null,
)
from mgmwm.model import WN, to_unconstrained


@pytest.fixture
def wn_set():
    rng = np.random.default_rng(11)
    return make_replicates([rng.normal(size=256), rng.normal(size=200)])


def fixed_fit(value, replicates):
    model = WN()
    return build_fitted(model, replicates, to_unconstrained(model, [1.0]), value)


class TestPValue:
    def test_observed_below_every_null_value(self):
        p = p_value_from_null([2.0, 3.0, 4.0], 1.0)
        assert p == 1.0
        assert decide(p, 0.05) == STATIONARY

    def test_observed_above_every_null_value(self):
        p = p_value_from_null([2.0, 3.0, 4.0], 10.0)
        assert p == 0.0
        assert decide(p, 0.05) == NEARLY_STATIONARY

    def test_share_at_least_as_large(self):
        assert p_value_from_null([1.0, 2.0, 3.0, 4.0], 3.0) == 0.5

    def test_failed_draws_are_ignored(self):
        assert p_value_from_null([np.nan, 5.0, np.nan, 0.5], 1.0) == 0.5

    def test_empty_null(self):
        with pytest.raises(OptimizationFailure):
            p_value_from_null([np.nan, np.nan], 1.0)

    def test_threshold_is_inclusive(self):
        assert decide(0.05, 0.05) == STATIONARY


class TestNearStationarityTest:
    @pytest.mark.parametrize("null_value, expected", [(5.0, STATIONARY), (0.5, NEARLY_STATIONARY)])
    def test_verdict_follows_null(self, wn_set, monkeypatch, null_value, expected):
        def constant(x0, obj, model, sim):
            return OptimizeResult(x=np.asarray(x0), fun=null_value, nit=1, success=True)

        monkeypatch.setattr(stationarity, "get_optim", constant)
        test = near_stationarity_test(fixed_fit(1.0, wn_set), wn_set, b=4)
        assert test.verdict == expected
        assert test.p_value == (1.0 if expected == STATIONARY else 0.0)
        assert test.statistic == 1.0
        np.testing.assert_allclose(test.distrib_h0, np.full(4, null_value))

    def test_simulated_lengths_match_data(self, wn_set):
        seen = []

        def recording(model, theta, n, *, rng, freq):
            seen.append(n)
            return rng.normal(size=n)

        near_stationarity_test(fixed_fit(1.0, wn_set), wn_set, b=2, simulator=recording)
        assert seen == [256, 200, 256, 200]

    def test_reproducible(self, wn_set):
        fitted = fit_model(WN(), wn_set, seed=3)
        first = near_stationarity_test(fitted, wn_set, b=5, seed=21)
        second = near_stationarity_test(fitted, wn_set, b=5, seed=21)
        assert first.distrib_h0.shape == (5,)
        assert np.all(np.isfinite(first.distrib_h0))
        np.testing.assert_array_equal(first.distrib_h0, second.distrib_h0)
        assert first.p_value == second.p_value
        assert 0.0 <= first.p_value <= 1.0

    def test_degenerate_simulations(self, wn_set):
        def flat(model, theta, n, *, rng, freq):
            return np.zeros(n)

        with pytest.raises(OptimizationFailure):
            near_stationarity_test(fixed_fit(1.0, wn_set), wn_set, b=3, simulator=flat)

    def test_local_simulator_cannot_go_to_workers(self, wn_set):
        def local(model, theta, n, *, rng, freq):
            return rng.normal(size=n)

        with pytest.raises(TypeError):
            near_stationarity_test(fixed_fit(1.0, wn_set), wn_set, b=3, simulator=local, n_jobs=2)
