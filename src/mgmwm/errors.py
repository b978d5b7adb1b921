"""
Exception taxonomy shared by the estimation and inference routines.
"""

from __future__ import annotations

import numpy as np


class MgmwmError(Exception):
    """
    Base class for all errors raised by the package.
    """


class InvalidModelError(MgmwmError, ValueError):
    """
    Unrecognised process tag, malformed parameter vector or out-of-domain values.
    """


class MissingModelError(MgmwmError, ValueError):
    """
    Reuse requested without a prior fit, or no model/data supplied.
    """


class WeightingError(MgmwmError, ArithmeticError):
    """
    A wavelet-variance confidence half-width cannot be used as a weight.
    """


class OptimizationFailure(MgmwmError, RuntimeError):
    """
    The local optimizer stopped without converging.

    The last simplex point (`x`, unconstrained units) and objective value
    (`fun`) are kept so the caller can decide whether to restart elsewhere.
    """

    def __init__(self, message: str, x: np.ndarray | None = None, fun: float = np.nan):
        super().__init__(message)
        self.x = x
        self.fun = fun
