"""Stress-per-point decomposition.

Splits the weighted residual sum of squares of a fit into contributions of
the individual objects. Shared by every solver as the last step before the
result is assembled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from stress_lab.algorithms.matrices import lower_triangle

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(frozen=True, slots=True)
class StressDecomposition:
    """Residuals of a fit, pairwise and per point."""

    resmat: NDArray[np.float64]
    """Symmetric matrix of w_ij·(dhat_ij - d_ij)², zero diagonal."""

    rss: float
    """Sum of the strict lower triangle of resmat."""

    spp: NDArray[np.float64]
    """Per-point share of the residual in percent (sums to 100)."""


def stress_per_point(
    dhat: NDArray[np.floating],
    confdist: NDArray[np.floating],
    weightmat: NDArray[np.floating],
) -> StressDecomposition:
    """Decompose the weighted residual into per-point contributions.

    Each point's raw contribution is the mean residual over its n-1 pairs;
    the contributions are then expressed as percentages of their total. A
    perfect fit gives all-zero contributions.

    Args:
        dhat: n×n fitted target values (disparities).
        confdist: n×n fitted distances.
        weightmat: n×n weights.

    Returns:
        StressDecomposition with resmat, rss and spp.
    """
    dhat = np.asarray(dhat, dtype=np.float64)
    confdist = np.asarray(confdist, dtype=np.float64)
    weightmat = np.asarray(weightmat, dtype=np.float64)
    n = dhat.shape[0]

    resmat = weightmat * (dhat - confdist) ** 2
    np.fill_diagonal(resmat, 0.0)

    point_means = resmat.sum(axis=0) / (n - 1)
    total = float(point_means.sum())
    if total > 0:
        spp = point_means / total * 100.0
    else:
        spp = np.zeros(n)

    return StressDecomposition(
        resmat=resmat,
        rss=float(lower_triangle(resmat).sum()),
        spp=spp,
    )


__all__ = [
    "StressDecomposition",
    "stress_per_point",
]
