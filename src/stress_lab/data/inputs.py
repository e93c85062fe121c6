"""Input conversion and validation for the solvers.

Every solver accepts its dissimilarities as a dense matrix, a pandas
DataFrame, or a condensed pairwise-distance vector and works on a private
float64 copy. Checks are centralized here so the engines can assume clean,
symmetric input.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
from scipy.spatial.distance import squareform

from stress_lab.exceptions import ValidationError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


@dataclass(frozen=True, slots=True)
class Dissimilarities:
    """Dense dissimilarity matrix with its row labels."""

    matrix: NDArray[np.float64]
    """n×n symmetric matrix with zero diagonal."""

    labels: tuple[str, ...]
    """Row labels (input index when present, else '1'..'n')."""

    @property
    def n(self) -> int:
        """Number of objects."""
        return int(self.matrix.shape[0])


def as_dissimilarities(
    delta: ArrayLike | pd.DataFrame,
    *,
    atol: float = 1e-10,
) -> Dissimilarities:
    """Convert any supported dissimilarity input into a dense symmetric matrix.

    Args:
        delta: n×n matrix, DataFrame (labels taken from the index), or a
            condensed vector of length n(n-1)/2.
        atol: Absolute tolerance for the symmetry check.

    Returns:
        Dissimilarities with a private float64 copy.

    Raises:
        ValidationError: If the input is not square, not symmetric, contains
            non-finite or negative values.
    """
    labels: tuple[str, ...] | None = None

    if isinstance(delta, pd.DataFrame):
        labels = tuple(str(label) for label in delta.index)
        matrix = delta.to_numpy(dtype=np.float64, copy=True)
    else:
        matrix = np.array(delta, dtype=np.float64, copy=True)

    if matrix.ndim == 1:
        matrix = _from_condensed(matrix)
    elif matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValidationError(
            f"delta must be a square matrix or a condensed vector, got shape {matrix.shape}"
        )

    if not np.all(np.isfinite(matrix)):
        raise ValidationError("delta contains non-finite values (missing dissimilarities are not supported)")

    check_symmetric(matrix, "delta", atol=atol)

    if np.any(matrix < 0):
        raise ValidationError("delta contains negative dissimilarities")

    n = matrix.shape[0]
    if n < 2:
        raise ValidationError(f"delta needs at least 2 objects, got {n}")

    np.fill_diagonal(matrix, 0.0)

    if labels is None:
        labels = tuple(str(i) for i in range(1, n + 1))

    return Dissimilarities(matrix=matrix, labels=labels)


def as_weight_matrix(
    weightmat: ArrayLike | pd.DataFrame | None,
    n: int,
    *,
    atol: float = 1e-10,
) -> NDArray[np.float64]:
    """Convert a weight matrix input, defaulting to 1 - I.

    Args:
        weightmat: n×n matrix, DataFrame, condensed vector, or None.
        n: Number of objects.
        atol: Absolute tolerance for the symmetry check.

    Returns:
        Private float64 n×n matrix with zero diagonal.

    Raises:
        ValidationError: On shape mismatch or asymmetry.
    """
    if weightmat is None:
        return 1.0 - np.eye(n)

    if isinstance(weightmat, pd.DataFrame):
        matrix = weightmat.to_numpy(dtype=np.float64, copy=True)
    else:
        matrix = np.array(weightmat, dtype=np.float64, copy=True)

    if matrix.ndim == 1:
        matrix = _from_condensed(matrix, what="weightmat")

    if matrix.shape != (n, n):
        raise ValidationError(f"weightmat must have shape ({n}, {n}), got {matrix.shape}")

    # Non-finite weights are zeroed later, after the power transform
    finite = np.where(np.isfinite(matrix), matrix, 0.0)
    check_symmetric(finite, "weightmat", atol=atol)

    np.fill_diagonal(matrix, 0.0)
    return matrix


def as_configuration(
    init: ArrayLike | pd.DataFrame | None,
    n: int,
    ndim: int,
) -> NDArray[np.float64] | None:
    """Validate a caller-supplied starting configuration."""
    if init is None:
        return None

    if isinstance(init, pd.DataFrame):
        config = init.to_numpy(dtype=np.float64, copy=True)
    else:
        config = np.array(init, dtype=np.float64, copy=True)

    if config.shape != (n, ndim):
        raise ValidationError(f"init must have shape ({n}, {ndim}), got {config.shape}")
    if not np.all(np.isfinite(config)):
        raise ValidationError("init contains non-finite coordinates")

    return config


def check_symmetric(matrix: NDArray[np.floating], name: str, *, atol: float = 1e-10) -> None:
    """Raise ValidationError naming the matrix if it is not symmetric."""
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValidationError(f"{name} is not a square matrix (shape {matrix.shape})")

    scale = max(1.0, float(np.max(np.abs(matrix))) if matrix.size else 1.0)
    if not np.allclose(matrix, matrix.T, rtol=0.0, atol=atol * scale):
        raise ValidationError(f"{name} is not symmetric")


def check_ndim(ndim: int, n: int) -> None:
    """Target dimension must lie in [1, n-1]."""
    if ndim < 1:
        raise ValidationError(f"ndim must be positive, got {ndim}")
    if ndim > n - 1:
        raise ValidationError(f"Maximum number of dimensions is n-1={n - 1}, got ndim={ndim}")


def check_positive(value: float, name: str) -> None:
    """Exponent or threshold must be strictly positive."""
    if not np.isfinite(value) or value <= 0:
        raise ValidationError(f"The {name} parameter must be strictly positive, got {value}")


def summarize_argument(value: Any) -> Any:
    """Compact, JSON-friendly description of a call argument."""
    if isinstance(value, pd.DataFrame):
        return f"<DataFrame {value.shape[0]}x{value.shape[1]}>"
    if isinstance(value, np.ndarray):
        shape = "x".join(str(s) for s in value.shape)
        return f"<array {shape}>"
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [summarize_argument(v) for v in value]
    return value


def _from_condensed(vector: NDArray[np.float64], what: str = "delta") -> NDArray[np.float64]:
    """Expand a condensed pairwise vector into a square matrix."""
    m = vector.shape[0]
    n = int(round(0.5 + np.sqrt(2 * m + 0.25)))
    if n * (n - 1) // 2 != m:
        raise ValidationError(
            f"{what} condensed vector has length {m}, which is not n(n-1)/2 for any n"
        )
    return squareform(vector, checks=False).astype(np.float64)


__all__ = [
    "Dissimilarities",
    "as_dissimilarities",
    "as_weight_matrix",
    "as_configuration",
    "check_symmetric",
    "check_ndim",
    "check_positive",
    "summarize_argument",
]
