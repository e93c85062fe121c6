"""Dense matrix primitives shared by the stress solvers.

All helpers work on full n×n matrices and keep the diagonal at zero, so the
solvers can sum over whole matrices without masking.

References:
- de Leeuw, J.: "Block Relaxation Algorithms in Statistics" (1994)
- Borg & Groenen: "Modern Multidimensional Scaling" (2nd ed.), §8.6
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


def enorm(x: NDArray[np.floating], w: NDArray[np.floating] | float | None = None) -> float:
    """Weighted Euclidean norm sqrt(sum(w * x**2)).

    Args:
        x: Array of any shape.
        w: Weights broadcastable to x (default 1).

    Returns:
        The (weighted) Frobenius norm.
    """
    if w is None:
        return float(np.sqrt(np.sum(x * x)))
    return float(np.sqrt(np.sum(w * x * x)))


def sqdist(x: NDArray[np.floating]) -> NDArray[np.float64]:
    """Squared Euclidean distances between the rows of x.

    Uses the Gram-matrix identity |s_i + s_j - 2 x_i·x_j|; the absolute value
    removes tiny negative round-off on the diagonal.

    Example:
        >>> sqdist(np.array([[0.0, 0.0], [3.0, 4.0]]))
        array([[ 0., 25.],
               [25.,  0.]])
    """
    s = np.sum(x * x, axis=1)
    d = np.abs(s[:, None] + s[None, :] - 2.0 * (x @ x.T))
    np.fill_diagonal(d, 0.0)
    return d


def pairwise_distances(x: NDArray[np.floating]) -> NDArray[np.float64]:
    """Euclidean distances between the rows of x."""
    return np.sqrt(sqdist(x))


def mk_power(x: NDArray[np.floating], r: float) -> NDArray[np.float64]:
    """Element-wise power that leaves the diagonal at zero.

    Computes |x + I|^r - I, which is defined for every r (including negative
    exponents) as long as the off-diagonal entries are positive.

    Args:
        x: Square matrix with zero diagonal.
        r: Exponent.

    Returns:
        Matrix of x_ij^r with zero diagonal.
    """
    eye = np.eye(x.shape[0])
    return np.abs(x + eye) ** r - eye


def mk_bmat(x: NDArray[np.floating]) -> NDArray[np.float64]:
    """Laplacian-style operator: -x off the diagonal, row sums on it."""
    b = -np.asarray(x, dtype=np.float64)
    np.fill_diagonal(b, 0.0)
    np.fill_diagonal(b, -b.sum(axis=1))
    return b


def offdiag_power(x: NDArray[np.floating], p: float) -> NDArray[np.float64]:
    """x**p off the diagonal, zero on it (no warnings for 0**negative)."""
    y = np.array(x, dtype=np.float64, copy=True)
    np.fill_diagonal(y, 1.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        y = y**p
    np.fill_diagonal(y, 0.0)
    return y


def lower_triangle(m: NDArray[np.floating]) -> NDArray[np.float64]:
    """Strict lower triangle as a condensed vector (column-major pair order)."""
    rows, cols = _lower_indices(m.shape[0])
    return np.asarray(m[rows, cols], dtype=np.float64)


def from_lower_triangle(v: NDArray[np.floating], n: int) -> NDArray[np.float64]:
    """Inverse of lower_triangle: symmetric n×n matrix with zero diagonal."""
    rows, cols = _lower_indices(n)
    m = np.zeros((n, n), dtype=np.float64)
    m[rows, cols] = v
    m[cols, rows] = v
    return m


def min_offdiag(m: NDArray[np.floating]) -> float:
    """Smallest strictly-lower-triangular entry."""
    return float(np.min(lower_triangle(m)))


def _lower_indices(n: int) -> tuple[NDArray[np.intp], NDArray[np.intp]]:
    # Column-major pair order (1,0), (2,0), ..., (n-1,0), (2,1), ...
    cols, rows = np.triu_indices(n, k=1)
    return rows, cols


__all__ = [
    "enorm",
    "sqdist",
    "pairwise_distances",
    "mk_power",
    "mk_bmat",
    "offdiag_power",
    "lower_triangle",
    "from_lower_triangle",
    "min_offdiag",
]
