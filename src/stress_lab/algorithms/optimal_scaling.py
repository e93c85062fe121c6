"""Optimal-scaling transforms for the majorization solvers.

Each transform is prepared once per solve from the (power-transformed,
normalized) dissimilarities and then maps the current fitted distances to
disparities (dhat). Disparities are returned in condensed lower-triangle
order and normalized so that sum(w * dhat**2) equals ``normq``.

Key Transforms:
- RatioScaling: dhat proportional to the dissimilarities
- IntervalScaling: dhat = a + b·δ, fitted by weighted least squares
- OrdinalScaling: weighted monotone regression with primary, secondary or
  tertiary tie handling
- SplineScaling: monotone I-spline basis (plus intercept) fitted by NNLS

References:
- Kruskal, J.B.: "Nonmetric multidimensional scaling: a numerical method" (1964)
- de Leeuw, J. & Mair, P.: "Multidimensional Scaling Using Majorization:
  SMACOF in R" (2009), §2.3
- Ramsay, J.O.: "Monotone Regression Splines in Action" (1988)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np
from scipy.interpolate import BSpline
from scipy.optimize import isotonic_regression, nnls

from stress_lab.data.model_types import (
    TieHandling,
    TransformType,
    get_default,
    parse_ties,
    parse_transform,
)

if TYPE_CHECKING:
    from numpy.typing import NDArray


class OptimalScaling(ABC):
    """Abstract base class for optimal-scaling transforms.

    All transform implementations must:
    1. Implement _fit() returning unnormalized disparities
    2. Expose their TransformType via transform_type
    """

    transform_type: TransformType

    def __init__(self, data: NDArray[np.floating], *, normq: float | None = None) -> None:
        """Prepare the transform.

        Args:
            data: Condensed dissimilarities (lower triangle, column-major).
            normq: Target value of sum(w * dhat**2); 0 disables normalization.
        """
        self._data = np.asarray(data, dtype=np.float64)
        self._normq = float(get_default("dhat_norm") if normq is None else normq)

    @property
    def data(self) -> NDArray[np.float64]:
        """Condensed dissimilarities the transform was prepared from."""
        return self._data

    def fit(
        self,
        target: NDArray[np.floating],
        weights: NDArray[np.floating],
    ) -> NDArray[np.float64]:
        """Disparities for the current fitted distances.

        Args:
            target: Condensed fitted (power) distances.
            weights: Condensed pair weights.

        Returns:
            Condensed disparities, normalized to sum(w * dhat**2) == normq
            whenever the weighted sum of squares is positive.
        """
        target = np.asarray(target, dtype=np.float64)
        weights = np.asarray(weights, dtype=np.float64)

        dhat = self._fit(target, weights)

        if self._normq > 0:
            ssq = float(np.sum(weights * dhat * dhat))
            if ssq > 0:
                dhat = dhat * np.sqrt(self._normq / ssq)
        return dhat

    @abstractmethod
    def _fit(
        self,
        target: NDArray[np.float64],
        weights: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Unnormalized disparities."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n_pairs={self._data.shape[0]})"


class RatioScaling(OptimalScaling):
    """Disparities are the dissimilarities themselves (up to normalization)."""

    transform_type = TransformType.RATIO

    def _fit(
        self,
        target: NDArray[np.float64],
        weights: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        return self._data.copy()


class IntervalScaling(OptimalScaling):
    """Linear transform a + b·δ fitted by weighted least squares.

    Falls back to non-negative coefficients when the unconstrained fit would
    produce negative disparities.
    """

    transform_type = TransformType.INTERVAL

    def __init__(self, data: NDArray[np.floating], *, normq: float | None = None) -> None:
        super().__init__(data, normq=normq)
        self._basis = np.column_stack([np.ones_like(self._data), self._data])

    def _fit(
        self,
        target: NDArray[np.float64],
        weights: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        sqrt_w = np.sqrt(weights)
        design = self._basis * sqrt_w[:, None]
        rhs = target * sqrt_w

        coef, *_ = np.linalg.lstsq(design, rhs, rcond=None)
        dhat = self._basis @ coef

        if np.any(dhat < 0):
            coef, _ = nnls(design, rhs)
            dhat = self._basis @ coef
        return dhat


class OrdinalScaling(OptimalScaling):
    """Weighted monotone regression of the fitted distances on the data order.

    Tie handling (blocks of equal dissimilarities):
    - primary: tied pairs may receive different disparities
    - secondary: tied pairs share one disparity
    - tertiary: the block means are monotone, within-block deviations kept
    """

    transform_type = TransformType.ORDINAL

    def __init__(
        self,
        data: NDArray[np.floating],
        *,
        ties: TieHandling | str = TieHandling.PRIMARY,
        normq: float | None = None,
    ) -> None:
        super().__init__(data, normq=normq)
        self.ties = parse_ties(ties)

        # Stable order of the data and the tie blocks along it
        self._order = np.argsort(self._data, kind="stable")
        sorted_data = self._data[self._order]
        starts = np.flatnonzero(np.r_[True, np.diff(sorted_data) != 0])
        self._block_starts = starts
        self._block_ids = np.repeat(np.arange(starts.size), np.diff(np.r_[starts, sorted_data.size]))

    def _fit(
        self,
        target: NDArray[np.float64],
        weights: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        y = target[self._order]
        w = weights[self._order]

        if self.ties is TieHandling.PRIMARY:
            # Within a tie block, order the targets so that the monotone fit
            # can follow them freely
            within = np.lexsort((y, self._block_ids))
            fitted_sorted = np.empty_like(y)
            fitted_sorted[within] = _weighted_monotone(y[within], w[within])
        else:
            block_w = np.bincount(self._block_ids, weights=w)
            block_mean = _block_means(y, w, self._block_ids, block_w)
            block_fit = _weighted_monotone(block_mean, block_w)
            if self.ties is TieHandling.SECONDARY:
                fitted_sorted = block_fit[self._block_ids]
            else:
                fitted_sorted = y + (block_fit - block_mean)[self._block_ids]

        dhat = np.empty_like(fitted_sorted)
        dhat[self._order] = fitted_sorted
        return dhat

    def __repr__(self) -> str:
        return f"OrdinalScaling(ties={self.ties.value}, n_pairs={self._data.shape[0]})"


class SplineScaling(OptimalScaling):
    """Monotone spline transform with an intercept column.

    The basis is built from a clamped B-spline basis of the given degree with
    ``int_knots`` interior knots at data quantiles; cumulating the B-splines
    from the right gives monotone non-decreasing (I-spline) columns, and
    non-negative least squares keeps the fitted transform monotone.
    """

    transform_type = TransformType.SPLINE

    def __init__(
        self,
        data: NDArray[np.floating],
        *,
        degree: int | None = None,
        int_knots: int | None = None,
        normq: float | None = None,
    ) -> None:
        super().__init__(data, normq=normq)
        self.degree = int(get_default("spline_degree") if degree is None else degree)
        self.int_knots = int(get_default("spline_int_knots") if int_knots is None else int_knots)
        self._basis = _ispline_basis(self._data, self.degree, self.int_knots)

    @property
    def basis(self) -> NDArray[np.float64]:
        """Spline basis with the intercept as first column."""
        return self._basis

    def _fit(
        self,
        target: NDArray[np.float64],
        weights: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        sqrt_w = np.sqrt(weights)
        coef, _ = nnls(self._basis * sqrt_w[:, None], target * sqrt_w)
        return self._basis @ coef

    def __repr__(self) -> str:
        return (
            f"SplineScaling(degree={self.degree}, int_knots={self.int_knots}, "
            f"n_pairs={self._data.shape[0]})"
        )


def create_transform(
    transform_type: TransformType | str,
    data: NDArray[np.floating],
    *,
    ties: TieHandling | str = TieHandling.PRIMARY,
    spline_degree: int | None = None,
    spline_int_knots: int | None = None,
    normq: float | None = None,
) -> OptimalScaling:
    """Factory function to create optimal-scaling transforms.

    Args:
        transform_type: 'ratio', 'interval', 'ordinal' or 'spline' ('mspline').
        data: Condensed dissimilarities.
        ties: Tie handling for the ordinal transform.
        spline_degree: Degree of the spline transform.
        spline_int_knots: Number of interior knots of the spline transform.
        normq: Normalization target for sum(w * dhat**2).

    Returns:
        OptimalScaling instance.

    Example:
        >>> transform = create_transform("ordinal", data, ties="secondary")
        >>> transform = create_transform("spline", data, spline_degree=3)
    """
    kind = parse_transform(transform_type)

    if kind is TransformType.RATIO:
        return RatioScaling(data, normq=normq)
    if kind is TransformType.INTERVAL:
        return IntervalScaling(data, normq=normq)
    if kind is TransformType.ORDINAL:
        return OrdinalScaling(data, ties=ties, normq=normq)
    return SplineScaling(data, degree=spline_degree, int_knots=spline_int_knots, normq=normq)


# =============================================================================
# INTERNAL HELPERS
# =============================================================================


def _weighted_monotone(y: NDArray[np.float64], w: NDArray[np.float64]) -> NDArray[np.float64]:
    """Non-decreasing weighted least-squares fit (pool adjacent violators).

    Zero weights are replaced by a tiny positive weight so that a block made
    only of zero-weight entries takes their plain mean.
    """
    if y.size == 0:
        return y.copy()

    positive = w[w > 0]
    floor = 1e-12 * (float(positive.max()) if positive.size else 1.0)
    safe_w = np.where(w > 0, w, floor)

    return np.asarray(isotonic_regression(y, weights=safe_w, increasing=True).x, dtype=np.float64)


def _block_means(
    y: NDArray[np.float64],
    w: NDArray[np.float64],
    block_ids: NDArray[np.intp],
    block_w: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Weighted mean per block; unweighted mean for blocks of zero weight."""
    sums = np.bincount(block_ids, weights=w * y)
    counts = np.bincount(block_ids)
    plain = np.bincount(block_ids, weights=y) / counts

    means = plain.copy()
    has_weight = block_w > 0
    means[has_weight] = sums[has_weight] / block_w[has_weight]
    return means


def _ispline_basis(x: NDArray[np.float64], degree: int, int_knots: int) -> NDArray[np.float64]:
    """Intercept plus monotone I-spline columns evaluated at x."""
    lo = float(np.min(x))
    hi = float(np.max(x))

    if hi <= lo:
        return np.ones((x.size, 1))

    inner = np.quantile(np.unique(x), np.linspace(0.0, 1.0, int_knots + 2)[1:-1])
    inner = np.unique(inner[(inner > lo) & (inner < hi)])
    knots = np.r_[np.full(degree + 1, lo), inner, np.full(degree + 1, hi)]

    bsplines = BSpline.design_matrix(x, knots, degree).toarray()
    # Right-cumulated B-splines are non-decreasing; the first column is
    # identically one and is replaced by the explicit intercept.
    isplines = np.cumsum(bsplines[:, ::-1], axis=1)[:, ::-1]

    return np.column_stack([np.ones(x.size), isplines[:, 1:]])


__all__ = [
    "OptimalScaling",
    "RatioScaling",
    "IntervalScaling",
    "OrdinalScaling",
    "SplineScaling",
    "create_transform",
]
