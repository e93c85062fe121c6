"""Integration tests against a textbook SMACOF.

With kappa = lambda = nu = 1 and a ratio transform, power stress is ordinary
normalized stress, so the majorizer must reach the same stress as the
Guttman-transform iteration from the same start.
"""

import numpy as np
import pytest

from stress_lab.algorithms.initializer import classical_scaling
from stress_lab.algorithms.matrices import pairwise_distances
from stress_lab.algorithms.power_stress import run_power_stress
from stress_lab.algorithms.sparsified import run_sparsified_stress
from stress_lab.data.examples import FIVE_POINT_DELTA, create_experiment


def guttman_smacof(delta: np.ndarray, init: np.ndarray, itmax: int = 20000, eps: float = 1e-14) -> np.ndarray:
    """Unweighted SMACOF: X <- B(X) X / n until the raw stress settles."""
    n = delta.shape[0]
    x = init.copy()
    previous = np.inf

    for _ in range(itmax):
        d = pairwise_distances(x)
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = np.where(d > 0, delta / d, 0.0)
        b = -ratio
        np.fill_diagonal(b, 0.0)
        np.fill_diagonal(b, -b.sum(axis=1))
        x = b @ x / n

        stress = np.sum((delta - pairwise_distances(x)) ** 2)
        if previous - stress < eps:
            break
        previous = stress

    return x


def normalized_stress(delta: np.ndarray, conf: np.ndarray) -> float:
    """Scale-free stress 1 - <δ, d>² / (|δ|² |d|²)."""
    d = pairwise_distances(conf)
    return float(1.0 - np.sum(delta * d) ** 2 / (np.sum(delta**2) * np.sum(d**2)))


class TestAgainstGuttman:
    """Unit exponents reproduce classical SMACOF."""

    @pytest.mark.parametrize(
        "delta",
        [
            FIVE_POINT_DELTA,
            create_experiment(10, 2, noise=0.2, seed=7).delta,
        ],
    )
    def test_same_stress(self, delta: np.ndarray) -> None:
        """Both iterations reach the same normalized stress."""
        init = classical_scaling(delta, 2, noise=0.0)
        reference = guttman_smacof(delta, init)

        result = run_power_stress(delta, init=init, acc=1e-12, itmax=100000)

        assert result.stress_m == pytest.approx(normalized_stress(delta, reference), abs=1e-5)

    def test_reported_stress_matches_configuration(self) -> None:
        """stress_m is the normalized stress of the returned configuration."""
        init = classical_scaling(FIVE_POINT_DELTA, 2, noise=0.0)
        result = run_power_stress(FIVE_POINT_DELTA, init=init)
        assert result.stress_m == pytest.approx(normalized_stress(FIVE_POINT_DELTA, result.conf), abs=1e-10)

    def test_sparsified_with_large_tau(self) -> None:
        """The sparsified wrapper with every pair inside tau is plain SMACOF."""
        init = classical_scaling(FIVE_POINT_DELTA, 2, noise=0.0)
        sparse = run_sparsified_stress(FIVE_POINT_DELTA, tau=100.0, init=init)
        plain = run_power_stress(FIVE_POINT_DELTA, init=init)
        assert sparse.stress_m == pytest.approx(plain.stress_m)
