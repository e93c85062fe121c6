"""Classical (Torgerson) scaling used to start the iterative solvers.

Double-centers the squared dissimilarities, B = -1/2 J Δ² J, and embeds the
objects with the leading eigenvectors of B scaled by the square roots of
their eigenvalues. A small Gaussian perturbation proportional to ‖Δ‖/n²
breaks exact degeneracies (coincident points, equal eigenvalues).

References:
- Torgerson, W.S.: "Multidimensional scaling: I. Theory and method" (1952)
- Gower, J.C.: "Some distance properties of latent root and vector methods
  used in multivariate analysis" (1966)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from stress_lab.algorithms.matrices import enorm

if TYPE_CHECKING:
    from numpy.typing import NDArray


def classical_scaling_eigen(
    delta: NDArray[np.floating],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Eigenpairs of the double-centered squared dissimilarities.

    Args:
        delta: n×n symmetric dissimilarity matrix.

    Returns:
        (eigenvalues, eigenvectors) sorted by decreasing eigenvalue; the
        eigenvectors are the columns of the second array.
    """
    delta = np.asarray(delta, dtype=np.float64)
    n = delta.shape[0]

    centering = np.eye(n) - np.full((n, n), 1.0 / n)
    b = -0.5 * centering @ (delta * delta) @ centering
    # Symmetrize round-off before eigh
    b = 0.5 * (b + b.T)

    values, vectors = np.linalg.eigh(b)
    order = np.argsort(values)[::-1]
    return values[order], vectors[:, order]


def classical_scaling(
    delta: NDArray[np.floating],
    ndim: int,
    *,
    random_state: int | np.random.Generator | None = None,
    noise: float = 0.01,
) -> NDArray[np.float64]:
    """Classical-scaling configuration with degeneracy-breaking noise.

    Negative eigenvalues (non-Euclidean Δ) are clipped to zero. An all-zero
    Δ is accepted and yields the zero configuration.

    Args:
        delta: n×n symmetric dissimilarity matrix.
        ndim: Number of dimensions of the configuration.
        random_state: Seed or Generator for the perturbation; the same seed
            always gives the same configuration.
        noise: Relative noise level (0 gives the plain Torgerson solution).

    Returns:
        n×ndim configuration.

    Example:
        >>> from stress_lab.data.examples import FIVE_POINT_DELTA
        >>> classical_scaling(FIVE_POINT_DELTA, 2, random_state=42).shape
        (5, 2)
    """
    delta = np.asarray(delta, dtype=np.float64)
    n = delta.shape[0]

    values, vectors = classical_scaling_eigen(delta)
    scale = np.sqrt(np.clip(values[:ndim], 0.0, None))
    conf = vectors[:, :ndim] * scale

    if noise > 0:
        rng = np.random.default_rng(random_state)
        conf = conf + enorm(delta) / (n * n) * noise * rng.standard_normal((n, ndim))

    return conf


__all__ = [
    "classical_scaling",
    "classical_scaling_eigen",
]
