"""
Weighted wavelet-variance objective and its multi-start minimization.

The objective sums, over replicates and scales, the squared gap between the
empirical and the theoretical wavelet variance, each term weighted by the
inverse squared confidence half-width of its scale.  It is evaluated in
unconstrained units so the simplex can roam freely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from statsmodels.tsa.stattools import acf

from .data import ReplicateSet, ReplicateSignal
from .errors import OptimizationFailure, WeightingError
from .model import ModelSpec, model_wv, to_natural, to_unconstrained
from .util import get_optim

logger = logging.getLogger(__name__)

C_PENAL = 1e10
N_GUIDED_DRAWS = 200
_FLOOR = 1e-12


def wv_weights(replicate: ReplicateSignal) -> np.ndarray:
    half = np.asarray(replicate.ci_half_width, dtype=float)
    bad = ~np.isfinite(half) | (half <= 0)
    if np.any(bad):
        scales = replicate.tau[bad].tolist()
        raise WeightingError(
            f"Confidence half-width of {replicate.name or 'replicate'} is zero or not finite at scales {scales}"
        )
    return 1.0 / half**2


def check_weights(replicates: ReplicateSet) -> None:
    for replicate in replicates:
        wv_weights(replicate)


def objective(theta: Sequence[float], model: ModelSpec, replicates: ReplicateSet) -> float:
    """
    Weighted sum of squared wavelet-variance residuals at unconstrained `theta`.
    """
    total = 0.0
    with np.errstate(all="ignore"):
        natural = to_natural(model, theta)
        for replicate in replicates:
            weights = wv_weights(replicate)
            theo = model_wv(model, natural, replicate.tau, freq=replicates.freq)
            if not np.all(np.isfinite(theo)):
                return C_PENAL
            total += float(np.sum(weights * (replicate.wv_empirical - theo) ** 2))
    if not np.isfinite(total):
        return C_PENAL
    return total


def _anchors(replicate: ReplicateSignal) -> dict[str, float]:
    wv = np.asarray(replicate.wv_empirical, dtype=float)
    tau = np.asarray(replicate.tau, dtype=float)
    return {
        "short": max(wv[0] * tau[0], _FLOOR),
        "qn": max(wv[0] * tau[0] ** 2 / 6.0, _FLOOR),
        "rw": max(wv[-1] * 12.0 * tau[-1] / (tau[-1] ** 2 + 2.0), _FLOOR),
        "dr": max(np.sqrt(16.0 * wv[-1]) / tau[-1], _FLOOR),
        "peak": max(float(np.max(wv)), _FLOOR),
    }


def _candidate(model: ModelSpec, anchors: dict[str, float], rng: np.random.Generator | None, phi0: float, freq: float) -> np.ndarray:
    share = 1.0 / model.n_process

    def scale() -> float:
        return share if rng is None else 10.0 ** rng.uniform(-2.0, 0.5)

    def phi() -> float:
        return phi0 if rng is None else 1.0 - 10.0 ** rng.uniform(-3.0, 0.0)

    values: list[float] = []
    for process in model.processes:
        if process.tag == "AR1":
            p = phi()
            values += [p, anchors["peak"] * (1.0 - p**2) * scale()]
        elif process.tag == "GM":
            p = min(max(phi(), 1e-3), 1.0 - 1e-3)
            values += [-np.log(p) * freq, anchors["peak"] * scale()]
        elif process.tag == "DR":
            values.append(anchors["dr"] * scale())
        elif process.tag == "QN":
            values.append(anchors["qn"] * scale())
        elif process.tag == "RW":
            values.append(anchors["rw"] * scale())
        elif process.tag == "WN":
            values.append(anchors["short"] * scale())
    return np.array(values, dtype=float)


def guided_start(
    model: ModelSpec,
    replicate: ReplicateSignal,
    *,
    rng: np.random.Generator,
    freq: float = 1.0,
    n_draws: int = N_GUIDED_DRAWS,
) -> np.ndarray:
    """
    Natural-unit starting point for a single replicate.

    Candidates are scaled from the replicate's own wavelet variance; the first
    one is deterministic (AR1 coefficients from the lag-1 autocorrelation),
    the others are random.  The candidate with the lowest objective wins.
    """
    single = ReplicateSet((replicate,), freq=freq)
    anchors = _anchors(replicate)
    rho = float(acf(replicate.data, nlags=1, fft=False)[1]) if replicate.n > 2 else 0.0
    phi0 = float(np.clip(rho if np.isfinite(rho) else 0.0, -0.99, 0.99))

    best, best_val = None, np.inf
    for k in range(n_draws + 1):
        cand = _candidate(model, anchors, None if k == 0 else rng, phi0, freq)
        val = objective(to_unconstrained(model, cand), model, single)
        if val < best_val:
            best, best_val = cand, val
    return best


def single_series_fit(
    model: ModelSpec,
    replicate: ReplicateSignal,
    *,
    rng: np.random.Generator,
    freq: float = 1.0,
) -> np.ndarray:
    """
    GMWM estimate of `model` on one replicate, in natural units.

    User-supplied model parameters seed the fit directly; placeholder
    parameters trigger the guided random search of :func:`guided_start`.
    """
    single = ReplicateSet((replicate,), freq=freq)
    if model.starting:
        start = guided_start(model, replicate, freq=freq, rng=rng)
    else:
        start = model.theta
    res = get_optim(to_unconstrained(model, start), objective, model, single)
    return to_natural(model, res.x)


@dataclass(frozen=True)
class Candidate:
    index: int
    start: np.ndarray | None
    x: np.ndarray | None
    value: float
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def multi_start(
    model: ModelSpec,
    replicates: ReplicateSet,
    starts: Sequence[np.ndarray | None],
) -> tuple[Candidate, list[Candidate]]:
    """
    Optimize the joint objective from every starting value and keep the best.

    `starts[i]` is the natural-unit start derived from replicate ``i``
    (``None`` when that replicate produced none).  The smallest terminal
    objective wins; ties go to the lowest index.
    """
    candidates: list[Candidate] = []
    best: Candidate | None = None
    for i, start in enumerate(starts):
        if start is None:
            candidates.append(Candidate(i, None, None, np.nan, "no starting value"))
            continue
        try:
            res = get_optim(to_unconstrained(model, start), objective, model, replicates)
        except (OptimizationFailure, WeightingError) as exc:
            logger.warning("Starting value from replicate %d failed: %s", i, exc)
            candidates.append(Candidate(i, np.asarray(start), None, np.nan, str(exc)))
            continue
        cand = Candidate(i, np.asarray(start), res.x, float(res.fun))
        logger.debug("Starting value from replicate %d reached objective %s", i, cand.value)
        candidates.append(cand)
        if best is None or cand.value < best.value:
            best = cand
    if best is None:
        raise OptimizationFailure("Optimization failed from every starting value")
    return best, candidates
