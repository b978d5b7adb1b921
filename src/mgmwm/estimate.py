"""
Multivariate GMWM estimation across replicate signals.

`mgmwm` is the entry point.  It either fits a model to a replicate set or
reuses the fit stored in a previous result, then optionally attaches
confidence intervals and a near-stationarity test.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
import pandas as pd

from .data import ReplicateSet
from .errors import InvalidModelError, MissingModelError, OptimizationFailure, WeightingError
from .gmwm import Candidate, check_weights, multi_start, single_series_fit
from .inference.confidence import ConfidenceIntervals, confidence_intervals
from .inference.stationarity import StationarityTest, near_stationarity_test
from .model import ModelSpec, decompose_wv, model_wv, to_natural, to_unconstrained
from .util import START_STREAM, draw_rng

logger = logging.getLogger(__name__)

DEFAULT_SEED = 2710


@dataclass(frozen=True)
class NotComputed:
    """
    Placeholder for an optional result that was not requested.
    """

    message: str

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True, eq=False)
class FittedModel:
    model: ModelSpec
    theta: np.ndarray
    theta_unconstrained: np.ndarray
    obj_value: float
    tau: np.ndarray
    scales: np.ndarray
    wv_implied: np.ndarray
    decomp_theo: tuple[np.ndarray, ...]
    candidates: tuple[Candidate, ...] = ()

    @property
    def desc(self) -> tuple[str, ...]:
        return self.model.desc

    @property
    def param_names(self) -> tuple[str, ...]:
        return self.model.param_names


@dataclass(frozen=True, eq=False)
class EstimationResult:
    fitted: FittedModel
    estimates: pd.Series
    confidence: ConfidenceIntervals | NotComputed
    stationarity: StationarityTest | NotComputed
    replicates: ReplicateSet
    seed: int = DEFAULT_SEED

    @property
    def model_hat(self) -> ModelSpec:
        return self.fitted.model

    @property
    def obj_value(self) -> float:
        return self.fitted.obj_value

    @property
    def ci_low(self) -> pd.Series | None:
        return self.confidence.low if self.confidence else None

    @property
    def ci_high(self) -> pd.Series | None:
        return self.confidence.high if self.confidence else None

    @property
    def distrib_param(self) -> pd.DataFrame | NotComputed:
        return self.confidence.distrib_param if self.confidence else self.confidence

    @property
    def p_value(self) -> float:
        return self.stationarity.p_value if self.stationarity else np.nan

    @property
    def test_result(self) -> str:
        return self.stationarity.verdict if self.stationarity else self.stationarity.message

    def summary(self) -> pd.DataFrame:
        table = self.estimates.to_frame()
        if self.confidence:
            table["CI Low"] = self.confidence.low
            table["CI High"] = self.confidence.high
        return table


def fit_model(
    model: ModelSpec,
    replicates: ReplicateSet,
    *,
    seed: int = DEFAULT_SEED,
    starting_fit: Callable | None = None,
) -> FittedModel:
    """
    Estimate `model` jointly on all replicates.

    Every replicate contributes a starting value from its own single-series
    fit; the joint objective is minimized from each and the best terminal
    point is kept.
    """
    starting_fit = single_series_fit if starting_fit is None else starting_fit
    check_weights(replicates)

    logger.info("Computing %d single-replicate starting values for %s", len(replicates), "+".join(model.desc))
    starts = []
    for i, replicate in enumerate(replicates):
        try:
            start = starting_fit(model, replicate, freq=replicates.freq, rng=draw_rng(seed, START_STREAM, i))
        except (OptimizationFailure, WeightingError) as exc:
            logger.warning("Single-series fit of replicate %d failed: %s", i, exc)
            start = None
        if start is not None:
            # wrong length or out-of-domain values are fatal here
            to_unconstrained(model, start)
        starts.append(start)

    best, candidates = multi_start(model, replicates, starts)
    logger.info("Selected starting value from replicate %d (objective %.6g)", best.index, best.value)
    return build_fitted(model, replicates, best.x, best.value, candidates)


def build_fitted(
    model: ModelSpec,
    replicates: ReplicateSet,
    x: np.ndarray,
    value: float,
    candidates=(),
) -> FittedModel:
    theta = to_natural(model, x)
    tau = replicates.tau
    return FittedModel(
        model=model.with_theta(theta),
        theta=theta,
        theta_unconstrained=np.asarray(x, dtype=float),
        obj_value=float(value),
        tau=tau,
        scales=replicates.scales,
        wv_implied=model_wv(model, theta, tau, freq=replicates.freq),
        decomp_theo=tuple(decompose_wv(model, theta, tau, freq=replicates.freq)),
        candidates=tuple(candidates),
    )


def _check_options(alpha_ci, n_boot_ci_max, b_stationarity_test, alpha_near_test) -> None:
    for name, value in (("alpha_ci", alpha_ci), ("alpha_near_test", alpha_near_test)):
        if not 0 < value < 1:
            raise ValueError(f"{name} must lie in (0, 1), received {value}")
    for name, value in (("n_boot_ci_max", n_boot_ci_max), ("b_stationarity_test", b_stationarity_test)):
        if int(value) != value or value < 1:
            raise ValueError(f"{name} must be a positive integer, received {value}")


def mgmwm(
    replicates: ReplicateSet | EstimationResult | None,
    model: ModelSpec | None = None,
    *,
    ci: bool = False,
    alpha_ci: float = 0.05,
    n_boot_ci_max: int = 300,
    stationarity_test: bool = False,
    b_stationarity_test: int = 30,
    alpha_near_test: float = 0.05,
    seed: int = DEFAULT_SEED,
    starting_fit: Callable | None = None,
    simulator: Callable | None = None,
    n_jobs: int = 1,
) -> EstimationResult:
    """
    Fit an additive latent-process model to a set of replicate signals.

    Parameters
    ----------
    replicates : ReplicateSet or EstimationResult
        Data to fit, or a previous result whose fit and data are reused.
    model : ModelSpec, optional
        Model to estimate.  May be omitted when `replicates` is a previous
        result; a model with the same ordered processes as that result also
        reuses the stored fit, any other model is estimated afresh on the
        stored data.
    ci : bool
        Compute resampling confidence intervals at level `alpha_ci` using at
        most `n_boot_ci_max` resamples.
    stationarity_test : bool
        Run the near-stationarity test with `b_stationarity_test` simulated
        replicate sets, rejecting when the p-value is below `alpha_near_test`.
    seed : int
        Root seed; every stochastic draw derives its own generator from it.
    starting_fit, simulator : callable, optional
        Replacements for :func:`mgmwm.gmwm.single_series_fit` and
        :func:`mgmwm.simulate.simulate`.
    n_jobs : int
        Worker processes for the resampling loops.  Above 1, a custom
        `simulator` must be a picklable module-level function; lambdas and
        closures raise ``TypeError`` before any draw starts.

    Raises
    ------
    MissingModelError
        No data, or no model to estimate and no previous fit to reuse.
    InvalidModelError
        `model` is not a :class:`ModelSpec`, or `starting_fit` returned a
        vector of the wrong length or outside the parameter domain.
    """
    _check_options(alpha_ci, n_boot_ci_max, b_stationarity_test, alpha_near_test)
    if model is not None and not isinstance(model, ModelSpec):
        raise InvalidModelError(f"model must be a ModelSpec, received {type(model).__name__}")

    if isinstance(replicates, EstimationResult):
        data = replicates.replicates
        if model is None or model.same_structure(replicates.fitted.model):
            logger.info("Reusing previously estimated %s model", "+".join(replicates.fitted.desc))
            fitted = replicates.fitted
        else:
            fitted = fit_model(model, data, seed=seed, starting_fit=starting_fit)
    elif isinstance(replicates, ReplicateSet):
        if model is None:
            raise MissingModelError("No model supplied and no previous fit available to reuse")
        data = replicates
        fitted = fit_model(model, data, seed=seed, starting_fit=starting_fit)
    elif replicates is None:
        raise MissingModelError("No replicate set supplied")
    else:
        raise MissingModelError(
            f"Expected a ReplicateSet or EstimationResult, received {type(replicates).__name__}"
        )

    if stationarity_test:
        stationarity = near_stationarity_test(
            fitted,
            data,
            b=b_stationarity_test,
            alpha=alpha_near_test,
            seed=seed,
            simulator=simulator,
            n_jobs=n_jobs,
        )
    else:
        stationarity = NotComputed("Near-stationarity test not computed. Set `stationarity_test=True`")

    if ci:
        confidence = confidence_intervals(
            fitted,
            data,
            n_boot_ci_max=n_boot_ci_max,
            alpha=alpha_ci,
            seed=seed,
            n_jobs=n_jobs,
        )
    else:
        confidence = NotComputed("Confidence intervals not computed. Set `ci=True`")

    estimates = pd.Series(fitted.theta, index=list(fitted.param_names), name="Estimates")
    return EstimationResult(
        fitted=fitted,
        estimates=estimates,
        confidence=confidence,
        stationarity=stationarity,
        replicates=data,
        seed=seed,
    )
