"""
Parameter confidence intervals from resampling the replicates.

With few replicates every multiset of replicate indices is refitted; once the
number of multisets reaches the draw limit, uniform draws with replacement
are used instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Sequence

import numpy as np
import pandas as pd

from ..data import ReplicateSet
from ..errors import OptimizationFailure, WeightingError
from ..gmwm import objective
from ..model import ModelSpec, to_natural
from ..util import RESAMPLE_STREAM, draw_rng, get_optim, map_draws, multisets, n_multisets

if TYPE_CHECKING:
    from ..estimate import FittedModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ConfidenceIntervals:
    low: pd.Series
    high: pd.Series
    distrib_param: pd.DataFrame
    resamples: tuple[tuple[int, ...], ...]
    exhaustive: bool
    alpha: float
    failed: tuple[tuple[int, str], ...] = ()

    @property
    def n_draws(self) -> int:
        return len(self.distrib_param)


def resample_indices(n_replicates: int, n_boot_ci_max: int, seed: int) -> tuple[list[tuple[int, ...]], bool]:
    """
    Replicate index sets to refit, and whether they exhaust all multisets.
    """
    if n_multisets(n_replicates) < n_boot_ci_max:
        return multisets(n_replicates), True
    draws = [
        tuple(int(v) for v in draw_rng(seed, RESAMPLE_STREAM, i).integers(0, n_replicates, size=n_replicates))
        for i in range(n_boot_ci_max)
    ]
    return draws, False


def _refit(indices: Sequence[int], model: ModelSpec, x0: np.ndarray, replicates: ReplicateSet):
    subset = replicates.resample(indices)
    try:
        res = get_optim(x0, objective, model, subset)
    except (OptimizationFailure, WeightingError) as exc:
        return None, str(exc)
    return to_natural(model, res.x), None


def empirical_bounds(distrib: np.ndarray, estimate: np.ndarray, alpha: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Column-wise alpha/2 and 1-alpha/2 quantiles, widened to contain `estimate`.
    """
    low = np.quantile(distrib, alpha / 2, axis=0)
    high = np.quantile(distrib, 1 - alpha / 2, axis=0)
    return np.minimum(low, estimate), np.maximum(high, estimate)


def confidence_intervals(
    fitted: "FittedModel",
    replicates: ReplicateSet,
    *,
    n_boot_ci_max: int = 300,
    alpha: float = 0.05,
    seed: int = 2710,
    n_jobs: int = 1,
) -> ConfidenceIntervals:
    model = fitted.model
    resamples, exhaustive = resample_indices(len(replicates), n_boot_ci_max, seed)
    logger.info(
        "Computing confidence intervals from %d %s resamples",
        len(resamples),
        "exhaustive" if exhaustive else "random",
    )

    work = partial(_refit, model=model, x0=fitted.theta_unconstrained, replicates=replicates)
    outcomes = map_draws(work, resamples, n_jobs=n_jobs)

    distrib = np.full((len(resamples), model.n_params), np.nan)
    failed = []
    for i, (row, error) in enumerate(outcomes):
        if error is not None:
            logger.warning("Resample %d %s failed: %s", i, resamples[i], error)
            failed.append((i, error))
        else:
            distrib[i] = row
    ok = distrib[~np.isnan(distrib).any(axis=1)]
    if ok.shape[0] == 0:
        raise OptimizationFailure("Every resample failed; confidence intervals are undefined")

    low, high = empirical_bounds(ok, fitted.theta, alpha)
    names = list(model.param_names)
    return ConfidenceIntervals(
        low=pd.Series(low, index=names, name="CI Low"),
        high=pd.Series(high, index=names, name="CI High"),
        distrib_param=pd.DataFrame(distrib, columns=names),
        resamples=tuple(resamples),
        exhaustive=exhaustive,
        alpha=alpha,
        failed=tuple(failed),
    )
