"""Example dissimilarity matrices for stress experiments.

This module provides reproducible dissimilarity matrices with a known
generating configuration, so solver behavior can be checked against ground
truth.

Key Features:
- Reproducible generation with seed control
- Exactly Euclidean matrices (zero-stress solutions exist) or noisy ones
- Small fixed matrices used throughout the tests
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from stress_lab.algorithms.matrices import pairwise_distances

if TYPE_CHECKING:
    from numpy.typing import NDArray


DEFAULT_SEED: int = 42
"""Default random seed for reproducible experiments."""


# Five objects, symmetric, not exactly embeddable in two dimensions.
FIVE_POINT_DELTA: NDArray[np.float64] = np.array(
    [
        [0.0, 3.0, 4.0, 5.0, 7.0],
        [3.0, 0.0, 2.0, 4.0, 6.0],
        [4.0, 2.0, 0.0, 3.0, 4.0],
        [5.0, 4.0, 3.0, 0.0, 3.0],
        [7.0, 6.0, 4.0, 3.0, 0.0],
    ]
)

# Six objects: two loose triangles far apart.
SIX_POINT_DELTA: NDArray[np.float64] = np.array(
    [
        [0.0, 1.0, 1.2, 5.0, 5.5, 6.0],
        [1.0, 0.0, 1.1, 4.8, 5.2, 5.9],
        [1.2, 1.1, 0.0, 4.5, 5.0, 5.4],
        [5.0, 4.8, 4.5, 0.0, 1.3, 1.0],
        [5.5, 5.2, 5.0, 1.3, 0.0, 1.2],
        [6.0, 5.9, 5.4, 1.0, 1.2, 0.0],
    ]
)


@dataclass(frozen=True, slots=True)
class ExampleMatrix:
    """Container for an example dissimilarity matrix with metadata."""

    delta: NDArray[np.float64]
    """n×n symmetric dissimilarity matrix."""

    points: NDArray[np.float64]
    """Generating configuration (n×ndim)."""

    labels: tuple[str, ...]
    """Object labels."""

    seed: int
    """Random seed used for generation."""

    noise: float
    """Relative multiplicative noise level."""


def create_euclidean_dissimilarities(
    n: int,
    ndim: int = 2,
    *,
    noise: float = 0.0,
    seed: int | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Create dissimilarities from random points, optionally perturbed.

    Points are standard normal in ndim dimensions. Each pair distance is
    multiplied by (1 + noise·|z|) with z standard normal, keeping the matrix
    symmetric and non-negative.

    Args:
        n: Number of objects.
        ndim: Dimension of the generating configuration.
        noise: Relative noise level (0 keeps the matrix exactly Euclidean).
        seed: Random seed for reproducibility.

    Returns:
        (delta, points)

    Example:
        >>> delta, points = create_euclidean_dissimilarities(10, 2, seed=42)
        >>> delta.shape
        (10, 10)
    """
    rng = np.random.default_rng(seed)

    points = rng.standard_normal((n, ndim))
    delta = pairwise_distances(points)

    if noise > 0:
        perturbation = 1.0 + noise * np.abs(rng.standard_normal((n, n)))
        perturbation = np.triu(perturbation, k=1)
        perturbation = perturbation + perturbation.T
        np.fill_diagonal(perturbation, 1.0)
        delta = delta * perturbation

    np.fill_diagonal(delta, 0.0)
    return delta, points


def create_experiment(
    n: int,
    ndim: int = 2,
    *,
    noise: float = 0.0,
    seed: int = DEFAULT_SEED,
) -> ExampleMatrix:
    """Create an example matrix with full metadata.

    Args:
        n: Number of objects.
        ndim: Dimension of the generating configuration.
        noise: Relative noise level.
        seed: Random seed (default: 42 for reproducibility).

    Returns:
        ExampleMatrix with dissimilarities, generating points and labels.
    """
    if n < 3:
        msg = f"Need at least 3 objects, got {n}"
        raise ValueError(msg)

    delta, points = create_euclidean_dissimilarities(n, ndim, noise=noise, seed=seed)
    labels = tuple(f"obj{i + 1}" for i in range(n))

    return ExampleMatrix(
        delta=delta,
        points=points,
        labels=labels,
        seed=seed,
        noise=noise,
    )


__all__ = [
    "DEFAULT_SEED",
    "FIVE_POINT_DELTA",
    "SIX_POINT_DELTA",
    "ExampleMatrix",
    "create_euclidean_dissimilarities",
    "create_experiment",
]
