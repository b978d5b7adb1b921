"""
Parametric simulation of additive latent-process models.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
from statsmodels.tsa.arima_process import arma_generate_sample

from .model import ModelSpec, split_by_process
from .processes import gm_to_ar1

BURNIN = 1000


def _ar1(theta: np.ndarray, n: int, rng: np.random.Generator, freq: float) -> np.ndarray:
    phi, sigma2 = theta
    return arma_generate_sample(
        [1.0, -phi],
        [1.0],
        n,
        scale=np.sqrt(sigma2),
        distrvs=rng.standard_normal,
        burnin=max(BURNIN, n),
    )


def _gm(theta: np.ndarray, n: int, rng: np.random.Generator, freq: float) -> np.ndarray:
    return _ar1(np.array(gm_to_ar1(theta[0], theta[1], freq)), n, rng, freq)


def _dr(theta: np.ndarray, n: int, rng: np.random.Generator, freq: float) -> np.ndarray:
    return theta[0] * np.arange(1, n + 1)


def _qn(theta: np.ndarray, n: int, rng: np.random.Generator, freq: float) -> np.ndarray:
    u = rng.uniform(size=n + 1)
    return np.sqrt(12.0 * theta[0]) * np.diff(u)


def _rw(theta: np.ndarray, n: int, rng: np.random.Generator, freq: float) -> np.ndarray:
    return np.cumsum(rng.normal(scale=np.sqrt(theta[0]), size=n))


def _wn(theta: np.ndarray, n: int, rng: np.random.Generator, freq: float) -> np.ndarray:
    return rng.normal(scale=np.sqrt(theta[0]), size=n)


GENERATORS = {"AR1": _ar1, "GM": _gm, "DR": _dr, "QN": _qn, "RW": _rw, "WN": _wn}


def simulate(
    model: ModelSpec,
    theta: Sequence[float] | None,
    n: int,
    *,
    rng: np.random.Generator,
    freq: float = 1.0,
) -> np.ndarray:
    """
    Draw one signal of length `n` from the additive model at natural parameters `theta`.

    Processes are drawn in model order from the single generator `rng`, so a
    fixed generator state reproduces the signal exactly.
    """
    if n < 1:
        raise ValueError("Signal length must be positive")
    out = np.zeros(n)
    for process, sub in split_by_process(model, theta):
        out += GENERATORS[process.tag](sub, n, rng, freq)
    return out
