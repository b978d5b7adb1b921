"""
Tests for wavelet-variance extraction and replicate containers.
"""

import numpy as np
import pytest

from conftest import TRUTH, exact_replicate
from mgmwm.data import ReplicateSet, ReplicateSignal, extract_wv, haar_wv, make_replicates
from mgmwm.errors import MissingModelError


class TestExtractWV:
    def test_white_noise_levels_and_magnitude(self):
        rng = np.random.default_rng(42)
        x = rng.normal(scale=2.0, size=4096)
        tau, wv, half, lo, hi = extract_wv(x)

        np.testing.assert_allclose(tau, 2.0 ** np.arange(1, 13))
        assert wv[0] == pytest.approx(4.0 / 2.0, rel=0.1)
        assert wv[3] == pytest.approx(4.0 / 16.0, rel=0.3)
        assert np.all(lo < wv) and np.all(wv < hi)
        np.testing.assert_allclose(half, (hi - lo) / 2.0)

    def test_drift_is_exact(self):
        omega = 0.3
        x = omega * np.arange(1, 513)
        for level in (1, 4, 7):
            nu2, m = haar_wv(x, level)
            tau = 2.0**level
            assert nu2 == pytest.approx(omega**2 * tau**2 / 16.0)
            assert m == 512 - 2**level + 1

    def test_constant_signal_has_zero_width(self):
        _, wv, half, _, _ = extract_wv(np.ones(64))
        np.testing.assert_allclose(wv, 0.0)
        np.testing.assert_allclose(half, 0.0)

    def test_too_short(self):
        with pytest.raises(ValueError):
            extract_wv([1.0])

    def test_non_finite(self):
        with pytest.raises(ValueError):
            extract_wv([1.0, np.nan, 2.0, 3.0])


class TestReplicateSet:
    def test_empty_set(self):
        with pytest.raises(MissingModelError):
            ReplicateSet(())

    def test_reference_is_longest(self):
        reps = ReplicateSet((exact_replicate(TRUTH, 6), exact_replicate(TRUTH, 9), exact_replicate(TRUTH, 9)), freq=4.0)
        assert reps.reference is reps[1]
        np.testing.assert_allclose(reps.scales, reps[1].tau / 4.0)

    def test_resample_allows_duplicates(self, exact_set):
        sub = exact_set.resample([1, 1])
        assert len(sub) == 2
        assert sub[0] is exact_set[1] and sub[1] is exact_set[1]
        assert sub.freq == exact_set.freq

    def test_make_replicates(self):
        rng = np.random.default_rng(0)
        reps = make_replicates([rng.normal(size=300), rng.normal(size=100)], freq=100.0, unit="s")
        assert reps.lengths == [300, 100]
        assert reps[0].tau.size == 8 and reps[1].tau.size == 6
        assert reps[0].name == "replicate 1"
        assert reps.unit == "s"

    def test_custom_extractor(self):
        def extractor(x):
            tau = np.array([2.0, 4.0])
            return tau, np.array([1.0, 0.5]), np.array([0.1, 0.1])

        rep = ReplicateSignal.from_samples(np.zeros(10), extractor=extractor)
        np.testing.assert_allclose(rep.wv_empirical, [1.0, 0.5])
        assert rep.ci_low is None

    def test_misaligned(self):
        with pytest.raises(ValueError):
            ReplicateSignal(np.zeros(8), np.array([2.0, 4.0]), np.array([1.0]), np.array([0.1, 0.1]))
