"""
Optimization, seeding and resampling helpers shared by the estimators.
"""

from __future__ import annotations

import itertools
import logging
import math
import pickle
from concurrent.futures import ProcessPoolExecutor
from typing import Callable, Iterable, Sequence

import numpy as np
from scipy.optimize import OptimizeResult, minimize

from .errors import OptimizationFailure

logger = logging.getLogger(__name__)

MAXITER = 5000
MAX_RESTARTS = 10
RESTART_TOL = 1e-8

# Leading seed index of each independent random stream.
START_STREAM = 0
RESAMPLE_STREAM = 1
NULL_STREAM = 2


def get_optim(
    theta: Sequence[float],
    obj: Callable[..., float],
    *args,
    maxiter: int = MAXITER,
    max_restarts: int = MAX_RESTARTS,
    tol: float = RESTART_TOL,
) -> OptimizeResult:
    """
    Derivative-free minimization with Nelder-Mead restarts.

    The simplex is rebuilt around the last terminal point until a restart
    improves the objective by less than ``tol * (1 + |f|)``.  Raises
    :class:`OptimizationFailure` when the final run exhausts its iteration limit.
    """
    theta = np.asarray(theta, dtype=float)

    def wrapped(x):
        return float(obj(x, *args))

    current_theta = theta
    current_val = wrapped(theta)
    if not np.isfinite(current_val):
        raise OptimizationFailure("Objective is not finite at the starting point", x=theta, fun=current_val)
    logger.debug("Value at starting point: %s", current_val)

    res = None
    for iteration in range(1, max_restarts + 1):
        res = minimize(
            wrapped,
            current_theta,
            method="Nelder-Mead",
            options={"maxiter": maxiter, "maxfev": 2 * maxiter, "disp": False},
        )
        improvement = current_val - res.fun
        if res.fun <= current_val:
            current_val = float(res.fun)
            current_theta = res.x
        logger.debug("iteration %d, value = %s, status = %s", iteration, current_val, res.status)
        if improvement < tol * (1.0 + abs(current_val)):
            break

    if not res.success:
        raise OptimizationFailure(
            f"Nelder-Mead did not converge: {res.message}", x=current_theta, fun=current_val
        )
    return OptimizeResult(x=np.asarray(current_theta, dtype=float), fun=current_val, nit=iteration, success=True)


def draw_rng(seed: int, *index: int) -> np.random.Generator:
    """
    Independent generator for draw `index`, derived only from `seed` and `index`.
    """
    return np.random.default_rng(np.random.SeedSequence([int(seed), *(int(i) for i in index)]))


def n_multisets(n_replicates: int) -> int:
    """
    Number of size-R multisets of R replicate indices, ``C(2R - 1, R)``.
    """
    return math.comb(2 * n_replicates - 1, n_replicates)


def multisets(n_replicates: int) -> list[tuple[int, ...]]:
    return list(itertools.combinations_with_replacement(range(n_replicates), n_replicates))


def map_draws(func: Callable, tasks: Iterable, n_jobs: int = 1) -> list:
    """
    Evaluate `func` on every task, in task order, optionally across processes.

    With ``n_jobs > 1`` `func` is sent to worker processes, so it and every
    callable it binds must be picklable (module-level functions, not lambdas
    or closures).  This is checked before the pool starts.
    """
    tasks = list(tasks)
    if n_jobs is None or n_jobs <= 1 or len(tasks) <= 1:
        return [func(task) for task in tasks]
    try:
        pickle.dumps(func)
    except (pickle.PicklingError, AttributeError, TypeError) as exc:
        raise TypeError(f"Cannot send {func!r} to worker processes: {exc}") from exc
    with ProcessPoolExecutor(max_workers=n_jobs) as pool:
        return list(pool.map(func, tasks))
