"""
Replicate signals and their empirical wavelet variance.

The default extractor computes the Haar MODWT wavelet variance with boundary
coefficients removed, together with a chi-square confidence interval per
scale.  Any callable with the same signature can be passed in its place.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np
from scipy import stats

from .errors import MissingModelError


def haar_wv(x: np.ndarray, level: int) -> tuple[float, int]:
    """
    Haar MODWT wavelet variance at scale 2**level and the number of
    non-boundary coefficients it averages.
    """
    width = 2**level
    half = width // 2
    cs = np.concatenate(([0.0], np.cumsum(x)))
    ends = np.arange(width, x.size + 1)
    coeffs = (cs[ends] - 2.0 * cs[ends - half] + cs[ends - width]) / width
    return float(np.mean(coeffs**2)), int(coeffs.size)


def extract_wv(
    data: Sequence[float],
    alpha: float = 0.05,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Empirical wavelet variance of `data` on the dyadic scales 2, 4, ..., 2^J.

    Returns ``(tau, wv_empirical, ci_half_width, ci_low, ci_high)``.  The
    interval uses the chi-square approximation with equivalent degrees of
    freedom ``max(M_j / 2^j, 1)`` where ``M_j`` counts the non-boundary
    coefficients at level ``j``.
    """
    x = np.asarray(data, dtype=float)
    if x.ndim != 1:
        raise ValueError("Signal must be one-dimensional")
    if not np.all(np.isfinite(x)):
        raise ValueError("Signal contains non-finite samples")
    n_levels = int(math.floor(math.log2(x.size))) if x.size >= 2 else 0
    if n_levels < 1:
        raise ValueError(f"Signal of length {x.size} is too short for a wavelet decomposition")

    tau = 2.0 ** np.arange(1, n_levels + 1)
    wv = np.empty(n_levels)
    lo = np.empty(n_levels)
    hi = np.empty(n_levels)
    for j in range(1, n_levels + 1):
        nu2, m = haar_wv(x, j)
        eta = max(m / 2**j, 1.0)
        wv[j - 1] = nu2
        lo[j - 1] = eta * nu2 / stats.chi2.ppf(1 - alpha / 2, eta)
        hi[j - 1] = eta * nu2 / stats.chi2.ppf(alpha / 2, eta)
    return tau, wv, (hi - lo) / 2.0, lo, hi


@dataclass(frozen=True, eq=False)
class ReplicateSignal:
    data: np.ndarray
    tau: np.ndarray
    wv_empirical: np.ndarray
    ci_half_width: np.ndarray
    ci_low: np.ndarray | None = None
    ci_high: np.ndarray | None = None
    name: str = ""

    def __post_init__(self):
        if not (self.tau.size == self.wv_empirical.size == self.ci_half_width.size):
            raise ValueError("tau, wavelet variance and half-width must be aligned")
        if np.any(np.diff(self.tau) <= 0):
            raise ValueError("Scales must be strictly increasing")

    @property
    def n(self) -> int:
        return int(self.data.size)

    @classmethod
    def from_samples(
        cls,
        data: Sequence[float],
        *,
        name: str = "",
        alpha: float = 0.05,
        extractor: Callable | None = None,
    ) -> "ReplicateSignal":
        data = np.asarray(data, dtype=float)
        if extractor is None:
            tau, wv, half, lo, hi = extract_wv(data, alpha=alpha)
        else:
            tau, wv, half, *bounds = extractor(data)
            lo, hi = bounds if bounds else (None, None)
        return cls(
            data=data,
            tau=np.asarray(tau, dtype=float),
            wv_empirical=np.asarray(wv, dtype=float),
            ci_half_width=np.asarray(half, dtype=float),
            ci_low=None if lo is None else np.asarray(lo, dtype=float),
            ci_high=None if hi is None else np.asarray(hi, dtype=float),
            name=name,
        )


@dataclass(frozen=True)
class ReplicateSet:
    replicates: tuple[ReplicateSignal, ...]
    freq: float = 1.0
    unit: str | None = None

    def __post_init__(self):
        if not self.replicates:
            raise MissingModelError("No replicate signals supplied")
        if self.freq <= 0:
            raise ValueError("Sampling frequency must be positive")

    def __len__(self) -> int:
        return len(self.replicates)

    def __iter__(self):
        return iter(self.replicates)

    def __getitem__(self, idx: int) -> ReplicateSignal:
        return self.replicates[idx]

    @property
    def lengths(self) -> list[int]:
        return [r.n for r in self.replicates]

    @property
    def reference(self) -> ReplicateSignal:
        """
        Replicate with the longest scale vector (first one on ties).
        """
        sizes = [r.tau.size for r in self.replicates]
        return self.replicates[int(np.argmax(sizes))]

    @property
    def tau(self) -> np.ndarray:
        return self.reference.tau

    @property
    def scales(self) -> np.ndarray:
        return self.reference.tau / self.freq

    def resample(self, indices: Sequence[int]) -> "ReplicateSet":
        return ReplicateSet(tuple(self.replicates[i] for i in indices), freq=self.freq, unit=self.unit)


def make_replicates(
    signals: Sequence[Sequence[float]],
    *,
    freq: float = 1.0,
    unit: str | None = None,
    names: Sequence[str] | None = None,
    alpha: float = 0.05,
    extractor: Callable | None = None,
) -> ReplicateSet:
    """
    Build a replicate set from raw signals, extracting each one's wavelet variance.
    """
    signals = list(signals)
    if names is None:
        names = [f"replicate {i + 1}" for i in range(len(signals))]
    elif len(names) != len(signals):
        raise ValueError("One name per signal is required")
    replicates = tuple(
        ReplicateSignal.from_samples(sig, name=nm, alpha=alpha, extractor=extractor)
        for sig, nm in zip(signals, names)
    )
    return ReplicateSet(replicates, freq=freq, unit=unit)
