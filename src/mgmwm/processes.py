"""
Lookup table of the latent processes supported by the additive model.

Each entry bundles the parameter labels, the map between natural and
unconstrained units and the closed-form Haar wavelet variance of the process.
Wavelet scales `tau` are expressed in samples (2, 4, ..., 2^J); the sampling
frequency only enters the Gauss-Markov conversion.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy.special import expit, logit


def ar1_to_wv(phi: float, sigma2: float, tau: np.ndarray) -> np.ndarray:
    tau = np.asarray(tau, dtype=float)
    half = tau / 2.0
    phi2 = phi * phi
    numerator = half - 3.0 * phi - half * phi2 + 4.0 * np.power(phi, half + 1.0) - np.power(phi, tau + 1.0)
    denominator = half**2 * (1.0 - phi) ** 2 * (1.0 - phi2)
    return numerator / denominator * sigma2 / 2.0


def gm_to_ar1(beta: float, sigma2_gm: float, freq: float = 1.0) -> tuple[float, float]:
    """
    Convert Gauss-Markov parameters (decay rate, stationary variance) to AR1.
    """
    phi = np.exp(-beta / freq)
    sigma2 = sigma2_gm * (1.0 - np.exp(-2.0 * beta / freq))
    return float(phi), float(sigma2)


def _ar1_wv(theta: np.ndarray, tau: np.ndarray, freq: float) -> np.ndarray:
    return ar1_to_wv(theta[0], theta[1], tau)


def _gm_wv(theta: np.ndarray, tau: np.ndarray, freq: float) -> np.ndarray:
    phi, sigma2 = gm_to_ar1(theta[0], theta[1], freq)
    return ar1_to_wv(phi, sigma2, tau)


def _dr_wv(theta: np.ndarray, tau: np.ndarray, freq: float) -> np.ndarray:
    return theta[0] ** 2 * np.asarray(tau, dtype=float) ** 2 / 16.0


def _qn_wv(theta: np.ndarray, tau: np.ndarray, freq: float) -> np.ndarray:
    return 6.0 * theta[0] / np.asarray(tau, dtype=float) ** 2


def _rw_wv(theta: np.ndarray, tau: np.ndarray, freq: float) -> np.ndarray:
    tau = np.asarray(tau, dtype=float)
    return theta[0] * (tau**2 + 2.0) / (12.0 * tau)


def _wn_wv(theta: np.ndarray, tau: np.ndarray, freq: float) -> np.ndarray:
    return theta[0] / np.asarray(tau, dtype=float)


def _phi_to_real(phi: float) -> float:
    return float(logit((phi + 1.0) / 2.0))


def _real_to_phi(x: float) -> float:
    return float(2.0 * expit(x) - 1.0)


def _log(value: float) -> float:
    return float(np.log(value))


def _exp(x: float) -> float:
    return float(np.exp(x))


def _positive(value: float) -> bool:
    return value > 0


def _inside_unit(value: float) -> bool:
    return -1.0 < value < 1.0


@dataclass(frozen=True)
class Transform:
    forward: Callable[[float], float]
    inverse: Callable[[float], float]
    valid: Callable[[float], bool]


LOG = Transform(forward=_log, inverse=_exp, valid=_positive)
PSEUDO_LOGIT = Transform(forward=_phi_to_real, inverse=_real_to_phi, valid=_inside_unit)


@dataclass(frozen=True)
class ProcessKind:
    tag: str
    labels: tuple[str, ...]
    transforms: tuple[Transform, ...]
    defaults: tuple[float, ...]
    wv: Callable[[np.ndarray, np.ndarray, float], np.ndarray]

    @property
    def n_params(self) -> int:
        return len(self.labels)


# Drift enters the wavelet variance through omega^2 only, so its sign is not
# identified and the slope is estimated as a positive magnitude.
PROCESS_TABLE: dict[str, ProcessKind] = {
    "AR1": ProcessKind("AR1", ("AR1", "SIGMA2"), (PSEUDO_LOGIT, LOG), (0.9, 1.0), _ar1_wv),
    "GM": ProcessKind("GM", ("BETA", "SIGMA2_GM"), (LOG, LOG), (0.1, 1.0), _gm_wv),
    "DR": ProcessKind("DR", ("DR",), (LOG,), (0.01,), _dr_wv),
    "QN": ProcessKind("QN", ("QN",), (LOG,), (0.01,), _qn_wv),
    "RW": ProcessKind("RW", ("RW",), (LOG,), (0.01,), _rw_wv),
    "WN": ProcessKind("WN", ("WN",), (LOG,), (1.0,), _wn_wv),
}
