"""
Additive latent-process models and their parameter transforms.

A model is an ordered sum of processes, e.g. ``AR1() + WN()``.  Its flat
parameter vector lists each process's parameters in model order; the
unconstrained counterpart used by the optimizer is obtained process by
process from the lookup table in :mod:`mgmwm.processes`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Sequence

import numpy as np

from .errors import InvalidModelError
from .processes import PROCESS_TABLE, ProcessKind


def process_kind(tag: str) -> ProcessKind:
    try:
        return PROCESS_TABLE[tag]
    except KeyError:
        raise InvalidModelError(
            f"Unrecognised process '{tag}'; expected one of {', '.join(PROCESS_TABLE)}"
        ) from None


@dataclass(frozen=True)
class ProcessSpec:
    tag: str
    params: tuple[float, ...]

    def __post_init__(self):
        kind = process_kind(self.tag)
        if len(self.params) != kind.n_params:
            raise InvalidModelError(
                f"{self.tag} takes {kind.n_params} parameter(s), received {len(self.params)}"
            )

    @property
    def kind(self) -> ProcessKind:
        return PROCESS_TABLE[self.tag]

    @property
    def n_params(self) -> int:
        return self.kind.n_params

    def wv(self, tau: Sequence[float], freq: float = 1.0) -> np.ndarray:
        return theoretical_wv(self, self.params, tau, freq=freq)


@dataclass(frozen=True)
class ModelSpec:
    processes: tuple[ProcessSpec, ...]
    starting: bool = True
    _names: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.processes:
            raise InvalidModelError("A model needs at least one process")
        object.__setattr__(self, "_names", _unique_labels(self.processes))

    def __add__(self, other: "ModelSpec") -> "ModelSpec":
        if not isinstance(other, ModelSpec):
            return NotImplemented
        return ModelSpec(self.processes + other.processes, starting=self.starting or other.starting)

    @property
    def desc(self) -> tuple[str, ...]:
        return tuple(p.tag for p in self.processes)

    @property
    def n_process(self) -> int:
        return len(self.processes)

    @property
    def n_params(self) -> int:
        return sum(p.n_params for p in self.processes)

    @property
    def theta(self) -> np.ndarray:
        return np.array([v for p in self.processes for v in p.params], dtype=float)

    @property
    def param_names(self) -> tuple[str, ...]:
        return self._names

    def same_structure(self, other: "ModelSpec") -> bool:
        """
        True when both models list the same processes in the same order.
        """
        return self.desc == other.desc

    def with_theta(self, theta: Sequence[float]) -> "ModelSpec":
        """
        Return a copy of the model carrying `theta` as user-supplied values.
        """
        processes = tuple(ProcessSpec(p.tag, tuple(float(v) for v in sub)) for p, sub in split_by_process(self, theta))
        return replace(self, processes=processes, starting=False)


def _unique_labels(processes: Sequence[ProcessSpec]) -> tuple[str, ...]:
    labels = [label for p in processes for label in p.kind.labels]
    seen: dict[str, int] = {}
    names = []
    for label in labels:
        seen[label] = seen.get(label, 0) + 1
        names.append(label if seen[label] == 1 else f"{label}_{seen[label]}")
    return tuple(names)


def _make(tag: str, values: Sequence[float | None]) -> ModelSpec:
    kind = process_kind(tag)
    given = [v is not None for v in values]
    if any(given) and not all(given):
        raise InvalidModelError(f"{tag} parameters must be given all together or not at all")
    starting = not any(given)
    params = kind.defaults if starting else tuple(float(v) for v in values)
    if not starting:
        _check_domain(kind, params)
    return ModelSpec((ProcessSpec(tag, params),), starting=starting)


def AR1(phi: float | None = None, sigma2: float | None = None) -> ModelSpec:
    return _make("AR1", (phi, sigma2))


def GM(beta: float | None = None, sigma2_gm: float | None = None) -> ModelSpec:
    return _make("GM", (beta, sigma2_gm))


def DR(omega: float | None = None) -> ModelSpec:
    return _make("DR", (omega,))


def QN(q2: float | None = None) -> ModelSpec:
    return _make("QN", (q2,))


def RW(gamma2: float | None = None) -> ModelSpec:
    return _make("RW", (gamma2,))


def WN(sigma2: float | None = None) -> ModelSpec:
    return _make("WN", (sigma2,))


def _check_length(model: ModelSpec, values: np.ndarray) -> None:
    if values.ndim != 1 or values.size != model.n_params:
        raise InvalidModelError(
            f"Parameter vector of length {values.size} does not match the model's {model.n_params} parameters"
        )


def _check_domain(kind: ProcessKind, params: Sequence[float]) -> None:
    for label, transform, value in zip(kind.labels, kind.transforms, params):
        if not (np.isfinite(value) and transform.valid(value)):
            raise InvalidModelError(f"{kind.tag} parameter {label}={value} is outside its domain")


def split_by_process(model: ModelSpec, theta: Sequence[float] | None = None) -> list[tuple[ProcessSpec, np.ndarray]]:
    """
    Pair every process of `model` with its slice of the flat vector `theta`.

    When `theta` is omitted the model's own parameters are used.
    """
    values = model.theta if theta is None else np.asarray(theta, dtype=float)
    _check_length(model, values)
    out = []
    idx = 0
    for process in model.processes:
        k = process.n_params
        out.append((process, values[idx : idx + k]))
        idx += k
    return out


def to_unconstrained(model: ModelSpec, natural: Sequence[float]) -> np.ndarray:
    out = []
    for process, sub in split_by_process(model, natural):
        kind = process.kind
        _check_domain(kind, sub)
        out.extend(t.forward(v) for t, v in zip(kind.transforms, sub))
    return np.array(out, dtype=float)


def to_natural(model: ModelSpec, unconstrained: Sequence[float]) -> np.ndarray:
    out = []
    for process, sub in split_by_process(model, unconstrained):
        out.extend(t.inverse(x) for t, x in zip(process.kind.transforms, sub))
    return np.array(out, dtype=float)


def theoretical_wv(process: ProcessSpec, params: Sequence[float], tau: Sequence[float], freq: float = 1.0) -> np.ndarray:
    params = np.asarray(params, dtype=float)
    kind = process.kind
    if params.size != kind.n_params:
        raise InvalidModelError(f"{kind.tag} takes {kind.n_params} parameter(s), received {params.size}")
    return kind.wv(params, np.asarray(tau, dtype=float), freq)


def model_wv(model: ModelSpec, theta: Sequence[float], tau: Sequence[float], freq: float = 1.0) -> np.ndarray:
    """
    Theoretical wavelet variance of the additive model on the scales `tau`.
    """
    tau = np.asarray(tau, dtype=float)
    total = np.zeros(tau.size)
    for process, sub in split_by_process(model, theta):
        total += theoretical_wv(process, sub, tau, freq=freq)
    return total


def decompose_wv(model: ModelSpec, theta: Sequence[float], tau: Sequence[float], freq: float = 1.0) -> list[np.ndarray]:
    return [theoretical_wv(process, sub, tau, freq=freq) for process, sub in split_by_process(model, theta)]
