import numpy as np
import pytest

from mgmwm.data import ReplicateSet, ReplicateSignal
from mgmwm.model import AR1, WN, model_wv

TRUTH = AR1(phi=0.9, sigma2=0.1) + WN(sigma2=1.0)


def exact_replicate(model, n_levels, n=None, name="", rel_half_width=0.1):
    """Replicate whose empirical WV equals the model's theoretical WV."""
    tau = 2.0 ** np.arange(1, n_levels + 1)
    wv = model_wv(model, model.theta, tau)
    return ReplicateSignal(
        data=np.zeros(n or 2**n_levels),
        tau=tau,
        wv_empirical=wv,
        ci_half_width=rel_half_width * wv,
        name=name,
    )


@pytest.fixture
def truth():
    return TRUTH


@pytest.fixture
def exact_set():
    return ReplicateSet(
        (
            exact_replicate(TRUTH, 9, name="long"),
            exact_replicate(TRUTH, 8, name="short"),
        )
    )
