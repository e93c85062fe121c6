"""Sparsified (neighborhood-thresholded) power-stress majorization.

A power-stress majorizer whose weights follow the configuration: before
every step the weights are reset to W^ν and every pair whose transformed
fitted distance d_ij^κ exceeds the neighborhood radius τ gets weight zero.
The set of attended pairs therefore changes while the configuration moves,
which makes the iteration a quasi-majorization until that set settles.

Neighborhood modes:
- quasi: a pair re-enters as soon as its fitted distance falls back under τ
- ratchet: a pair that left the neighborhood stays out for the rest of the
  solve, which keeps every step a true majorization step once W is fixed

With τ above every fitted distance the solve is identical to the plain
power-stress majorizer.

References:
- Demartines, P. & Hérault, J.: "Curvilinear Component Analysis: A
  Self-Organizing Neural Network for Nonlinear Mapping of Data Sets" (1997)
- Rusch, T., Mair, P. & Hornik, K.: "Structure-based hyperparameter
  selection with Bayesian optimization in multidimensional scaling" (2023)
"""

from __future__ import annotations

import warnings
from collections.abc import Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger

from stress_lab.algorithms.matrices import lower_triangle, min_offdiag, mk_power
from stress_lab.algorithms.optimal_scaling import OptimalScaling
from stress_lab.algorithms.power_stress import (
    PowerStressMajorizer,
    build_majorizer_result,
    prepare_majorizer,
    run_majorizer,
)
from stress_lab.algorithms.results import CallRecord, MDSResult
from stress_lab.data.model_types import (
    ModelFamily,
    NeighborhoodMode,
    TieHandling,
    TransformType,
    get_default,
    get_spec,
    parse_neighborhood,
)
from stress_lab.exceptions import EmptyNeighborhoodError, ValidationError

if TYPE_CHECKING:
    import pandas as pd
    from numpy.typing import ArrayLike, NDArray


class SparsifiedMajorizer(PowerStressMajorizer):
    """Power-stress engine with configuration-dependent neighborhood weights.

    Example:
        >>> engine = SparsifiedMajorizer(
        ...     setup.weights, setup.transform, setup.init, kappa=1.0, tau=0.5
        ... )
        >>> result = engine.iterate()
        >>> result.active_pairs
        7
    """

    __slots__ = ("_tau", "_mode")

    def __init__(
        self,
        weights: NDArray[np.floating],
        transform: OptimalScaling,
        conf: NDArray[np.floating],
        *,
        kappa: float,
        tau: float,
        neighborhood: NeighborhoodMode | str = NeighborhoodMode.QUASI,
    ) -> None:
        """Initialize the engine.

        Args:
            weights: n×n weights, already power-transformed, zero diagonal.
            transform: Optimal-scaling transform prepared on the dissimilarities.
            conf: Starting configuration.
            kappa: Exponent of the fitted distances.
            tau: Neighborhood radius on the transformed fitted distances.
            neighborhood: Whether excluded pairs may re-enter.
        """
        # Read by _effective_weights during the base initialization
        self._tau = float(tau)
        self._mode = parse_neighborhood(neighborhood)
        super().__init__(weights, transform, conf, kappa=kappa)

    @property
    def tau(self) -> float:
        """Neighborhood radius."""
        return self._tau

    @property
    def neighborhood(self) -> NeighborhoodMode:
        """Re-entry rule for excluded pairs."""
        return self._mode

    def _check_state(self) -> None:
        smallest = min_offdiag(mk_power(self._state.sqdist, self._r))
        if self._tau <= smallest:
            raise EmptyNeighborhoodError(self._tau, smallest, self._iteration + 1)

    def _effective_weights(
        self,
        sqdist_new: NDArray[np.float64],
        previous: NDArray[np.float64] | None,
    ) -> NDArray[np.float64]:
        weights = self._base_weights.copy()
        weights[mk_power(sqdist_new, self._r) > self._tau] = 0.0

        if self._mode is NeighborhoodMode.RATCHET and previous is not None:
            weights[previous == 0] = 0.0
        return weights

    def _active_pairs(self, weights: NDArray[np.float64]) -> int | None:
        return int(np.count_nonzero(lower_triangle(weights)))


def default_tau(tdelta: NDArray[np.floating]) -> float:
    """Default neighborhood radius: 0.9 quantile of the normalized dissimilarities."""
    return float(np.quantile(lower_triangle(tdelta), get_default("tau_quantile")))


def resolve_tau(
    tau: float | Sequence[float] | NDArray[np.floating] | None,
    tdelta: NDArray[np.floating],
) -> float:
    """Scalar neighborhood radius from the user's tau.

    A sequence is reduced to its maximum with a warning.

    Raises:
        ValidationError: If tau is not strictly positive.
    """
    if tau is None:
        return default_tau(tdelta)

    values = np.atleast_1d(np.asarray(tau, dtype=np.float64))
    if values.size == 0:
        raise ValidationError("tau must not be empty")
    if values.size > 1:
        msg = "Supplied tau is of length > 1; the maximum is used as tau"
        logger.warning(msg)
        warnings.warn(msg, UserWarning, stacklevel=4)

    value = float(np.max(values))
    if not np.isfinite(value) or value <= 0:
        raise ValidationError(f"tau must be positive, got {value}")
    return value


def run_sparsified_power_stress(
    delta: ArrayLike | pd.DataFrame,
    *,
    kappa: float = 1.0,
    lambda_: float = 1.0,
    nu: float = 1.0,
    tau: float | Sequence[float] | None = None,
    type: TransformType | str = "ratio",
    ties: TieHandling | str = "primary",
    neighborhood: NeighborhoodMode | str = "quasi",
    weightmat: ArrayLike | pd.DataFrame | None = None,
    init: ArrayLike | pd.DataFrame | None = None,
    ndim: int = 2,
    acc: float | None = None,
    itmax: int | None = None,
    verbose: int = 0,
    principal: bool = False,
    spline_degree: int = 2,
    spline_int_knots: int = 2,
    random_state: int | np.random.Generator | None = None,
) -> MDSResult:
    """Fit a sparsified power-stress MDS model.

    Args:
        delta: Dissimilarities (matrix, DataFrame or condensed vector).
        kappa: Exponent of the fitted distances (> 0).
        lambda_: Exponent of the dissimilarities (> 0).
        nu: Exponent of the weights.
        tau: Neighborhood radius on d^κ; defaults to the 0.9 quantile of
            the normalized transformed dissimilarities.
        type: 'ratio', 'interval', 'ordinal' or 'spline'.
        ties: Tie handling for ordinal transforms.
        neighborhood: 'quasi' (pairs may re-enter) or 'ratchet'.
        weightmat: Symmetric weights (default 1 - I).
        init: Starting configuration (default: classical scaling).
        ndim: Dimension of the configuration.
        acc: Stress-change threshold (default 1e-6).
        itmax: Iteration cap (default 10000).
        verbose: Logging level.
        principal: Rotate the final configuration to principal axes.
        spline_degree: Degree of the spline transform.
        spline_int_knots: Interior knots of the spline transform.
        random_state: Seed or Generator for the default initializer.

    Returns:
        MDSResult with model "Sparsified Power-Stress SMACOF" and the
        effective weights at termination in tweightmat.

    Raises:
        ValidationError: On invalid input or hyperparameters.
        EmptyNeighborhoodError: If tau does not exceed the smallest
            transformed fitted distance.
    """
    spec = get_spec(ModelFamily.SPARSIFIED)
    return _solve_sparsified(
        "run_sparsified_power_stress",
        spec.label,
        delta,
        kappa=kappa,
        lambda_=lambda_,
        nu=nu,
        tau=tau,
        type=type,
        ties=ties,
        neighborhood=neighborhood,
        weightmat=weightmat,
        init=init,
        ndim=ndim,
        acc=spec.acc if acc is None else acc,
        itmax=spec.itmax if itmax is None else itmax,
        verbose=verbose,
        principal=principal,
        spline_degree=spline_degree,
        spline_int_knots=spline_int_knots,
        random_state=random_state,
    )


def run_sparsified_stress(
    delta: ArrayLike | pd.DataFrame,
    *,
    tau: float | Sequence[float] | None = None,
    type: TransformType | str = "ratio",
    ties: TieHandling | str = "primary",
    neighborhood: NeighborhoodMode | str = "quasi",
    weightmat: ArrayLike | pd.DataFrame | None = None,
    init: ArrayLike | pd.DataFrame | None = None,
    ndim: int = 2,
    acc: float | None = None,
    itmax: int | None = None,
    verbose: int = 0,
    principal: bool = False,
    spline_degree: int = 2,
    spline_int_knots: int = 2,
    random_state: int | np.random.Generator | None = None,
) -> MDSResult:
    """Sparsified stress: the sparsified majorizer with κ = λ = ν = 1.

    Returns:
        MDSResult with model "Sparsified SMACOF" and parameters {tau}.
    """
    spec = get_spec(ModelFamily.SPARSIFIED)
    result = _solve_sparsified(
        "run_sparsified_stress",
        "Sparsified SMACOF",
        delta,
        kappa=1.0,
        lambda_=1.0,
        nu=1.0,
        tau=tau,
        type=type,
        ties=ties,
        neighborhood=neighborhood,
        weightmat=weightmat,
        init=init,
        ndim=ndim,
        acc=spec.acc if acc is None else acc,
        itmax=spec.itmax if itmax is None else itmax,
        verbose=verbose,
        principal=principal,
        spline_degree=spline_degree,
        spline_int_knots=spline_int_knots,
        random_state=random_state,
    )
    return replace(result, parameters={"tau": result.parameters["tau"]})


def _solve_sparsified(
    function: str,
    model: str,
    delta: ArrayLike | pd.DataFrame,
    *,
    kappa: float,
    lambda_: float,
    nu: float,
    tau: float | Sequence[float] | None,
    type: TransformType | str,
    ties: TieHandling | str,
    neighborhood: NeighborhoodMode | str,
    weightmat: ArrayLike | pd.DataFrame | None,
    init: ArrayLike | pd.DataFrame | None,
    ndim: int,
    acc: float,
    itmax: int,
    verbose: int,
    principal: bool,
    spline_degree: int,
    spline_int_knots: int,
    random_state: int | np.random.Generator | None,
) -> MDSResult:
    """Shared body of the sparsified entry points."""
    call = CallRecord.capture(
        function,
        delta=delta,
        kappa=kappa,
        lambda_=lambda_,
        nu=nu,
        tau=tau,
        type=type,
        ties=ties,
        neighborhood=neighborhood,
        weightmat=weightmat,
        init=init,
        ndim=ndim,
        acc=acc,
        itmax=itmax,
        principal=principal,
        random_state=random_state,
    )
    mode = parse_neighborhood(neighborhood)

    setup = prepare_majorizer(
        delta,
        kappa=kappa,
        lambda_=lambda_,
        nu=nu,
        type=type,
        ties=ties,
        weightmat=weightmat,
        init=init,
        ndim=ndim,
        spline_degree=spline_degree,
        spline_int_knots=spline_int_knots,
        random_state=random_state,
    )
    tau_value = resolve_tau(tau, setup.tdelta)

    if verbose > 0:
        logger.info(
            "Fitting {} sparsified power stress with kappa={} lambda={} nu={} tau={} ({})",
            setup.type.value,
            setup.kappa,
            setup.lambda_,
            setup.nu,
            tau_value,
            mode.value,
        )

    engine = SparsifiedMajorizer(
        setup.weights,
        setup.transform,
        setup.init,
        kappa=setup.kappa,
        tau=tau_value,
        neighborhood=mode,
    )
    trace = run_majorizer(engine, acc=acc, itmax=itmax, verbose=verbose)

    return build_majorizer_result(
        setup,
        trace,
        model=model,
        parameters={
            "kappa": setup.kappa,
            "lambda": setup.lambda_,
            "nu": setup.nu,
            "tau": tau_value,
        },
        principal=principal,
        call=call,
        tweightmat=trace.state.weights,
        verbose=verbose,
    )


__all__ = [
    "SparsifiedMajorizer",
    "default_tau",
    "resolve_tau",
    "run_sparsified_power_stress",
    "run_sparsified_stress",
]
