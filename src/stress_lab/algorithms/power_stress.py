"""Power-stress majorization (generalized SMACOF).

Minimizes the normalized power stress

    σ(X) = Σ w_ij^ν (dhat_ij - α·d_ij(X)^κ)²,   Σ_{i<j} w_ij^ν dhat_ij² = 1/2

over unit-norm configurations X, where dhat are the optimally scaled
power-transformed dissimilarities δ_ij^λ and α is the optimal scale of the
fitted distances. Each iteration multiplies a majorization operator built
from two B-matrices into the configuration; for r = κ/2 the operator carries
a constant-times-identity correction whose form depends on whether r ≥ 1/2.

Key Features:
- Engine class with iterate() returning IterationResult
- Rejected steps (non-finite stress) are explicit and keep the previous state
- Termination keeps the state with the lower of the last two stress values

References:
- de Leeuw, J.: "Minimizing rStress Using Nested Majorization" (2014)
- de Leeuw, J., Groenen, P. & Mair, P.: "Minimizing rStress Using
  Majorization" (2016)
- Borg & Groenen: "Modern Multidimensional Scaling" (2nd ed.), §8.6
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from loguru import logger

from stress_lab.algorithms.diagnostics import stress_per_point
from stress_lab.algorithms.initializer import classical_scaling
from stress_lab.algorithms.matrices import (
    enorm,
    from_lower_triangle,
    lower_triangle,
    mk_bmat,
    mk_power,
    sqdist,
)
from stress_lab.algorithms.optimal_scaling import OptimalScaling, create_transform
from stress_lab.algorithms.results import CallRecord, IterationResult, MDSResult
from stress_lab.data.inputs import (
    as_configuration,
    as_dissimilarities,
    as_weight_matrix,
    check_ndim,
    check_positive,
)
from stress_lab.data.model_types import (
    ModelFamily,
    TieHandling,
    TransformType,
    get_default,
    get_spec,
    parse_ties,
    parse_transform,
)
from stress_lab.exceptions import IterationLimitWarning, ValidationError

if TYPE_CHECKING:
    import pandas as pd
    from numpy.typing import ArrayLike, NDArray


@dataclass(frozen=True, slots=True)
class MajorizerState:
    """Accepted state of a majorization run."""

    conf: NDArray[np.float64]
    """Unit-norm configuration."""

    sqdist: NDArray[np.float64]
    """Squared distances of conf."""

    dhat: NDArray[np.float64]
    """Disparities (n×n)."""

    weights: NDArray[np.float64]
    """Effective weights used for dhat and the stress."""

    alpha: float
    """Optimal scale of the fitted distances."""

    stress: float
    """Normalized stress σ."""


class PowerStressMajorizer:
    """Power-stress majorization engine.

    The engine owns private copies of the weights and the current state;
    subclasses change how the effective weights follow the configuration.

    Example:
        >>> setup = prepare_majorizer(FIVE_POINT_DELTA, kappa=1.0, ...)
        >>> engine = PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0)
        >>> for _ in range(100):
        ...     result = engine.iterate()
        ...     if abs(result.change) < 1e-6:
        ...         break
    """

    __slots__ = (
        "_n",
        "_r",
        "_upper_branch",
        "_base_weights",
        "_transform",
        "_eye",
        "_iteration",
        "_state",
        "_state_at",
        "_previous",
        "_previous_at",
    )

    def __init__(
        self,
        weights: NDArray[np.floating],
        transform: OptimalScaling,
        conf: NDArray[np.floating],
        *,
        kappa: float,
    ) -> None:
        """Initialize the engine and fit the first disparities.

        Args:
            weights: n×n weights, already power-transformed, zero diagonal.
            transform: Optimal-scaling transform prepared on the dissimilarities.
            conf: Starting configuration (normalized to unit norm here).
            kappa: Exponent of the fitted distances.
        """
        self._n = conf.shape[0]
        self._r = kappa / 2.0
        self._upper_branch = self._r >= 0.5
        self._base_weights = np.array(weights, dtype=np.float64, copy=True)
        self._transform = transform
        self._eye = np.eye(self._n)
        self._iteration = 0

        x = np.array(conf, dtype=np.float64, copy=True)
        x /= enorm(x)
        d = sqdist(x)
        w = self._effective_weights(d, None)

        self._state = self._evaluate(x, d, w)
        self._state_at = 0
        self._previous: MajorizerState | None = None
        self._previous_at = 0

    @property
    def state(self) -> MajorizerState:
        """Current accepted state."""
        return self._state

    @property
    def iteration(self) -> int:
        """Number of iterations performed."""
        return self._iteration

    @property
    def r(self) -> float:
        """Half the distance exponent (exponent applied to squared distances)."""
        return self._r

    def iterate(self) -> IterationResult:
        """Execute a single majorization step.

        Algorithm:
            1. p1 = D^(r-1), p2 = D^(2r-1) on squared distances D
            2. B_y = B(W·dhat·p1), C_y = B(W·p2)
            3. M = B_y - α(C_y - δI)                 (r ≥ 1/2)
               M = (B_y - βI) - α(C_y - γI)          (r < 1/2)
            4. X' = M X / ‖M X‖, then refit weights, dhat, α and σ

        Returns:
            IterationResult; step_rejected is set when σ became non-finite.
        """
        self._check_state()
        self._iteration += 1

        current = self._state
        r = self._r
        w = current.weights

        p1 = mk_power(current.sqdist, r - 1.0)
        p2 = mk_power(current.sqdist, 2.0 * r - 1.0)
        by = mk_bmat(w * current.dhat * p1)
        cy = mk_bmat(w * p2)

        if self._upper_branch:
            de = (4.0 * r - 1.0) * (4.0**r) * float(np.sum(w))
            m = by - current.alpha * (cy - de * self._eye)
        else:
            ga = 2.0 * float(np.sum(w * p2))
            be = (2.0 * r - 1.0) * (2.0**r) * float(np.sum(w * current.dhat))
            m = (by - be * self._eye) - current.alpha * (cy - ga * self._eye)

        with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
            x = m @ current.conf
            x = x / enorm(x)
            d = sqdist(x)
            candidate = self._evaluate(x, d, self._effective_weights(d, current.weights))

        if not np.isfinite(candidate.stress):
            logger.warning(
                "Iteration {}: stress is not finite, keeping the previous configuration",
                self._iteration,
            )
            return IterationResult(
                iteration=self._iteration,
                stress=current.stress,
                change=0.0,
                step_rejected=True,
                active_pairs=self._active_pairs(current.weights),
            )

        self._previous, self._previous_at = current, self._state_at
        self._state, self._state_at = candidate, self._iteration

        return IterationResult(
            iteration=self._iteration,
            stress=candidate.stress,
            change=current.stress - candidate.stress,
            step_rejected=False,
            active_pairs=self._active_pairs(candidate.weights),
        )

    def best_state(self) -> tuple[MajorizerState, int]:
        """Lower-stress state of the last two accepted ones, with its iteration."""
        if self._previous is not None and self._previous.stress < self._state.stress:
            return self._previous, self._previous_at
        return self._state, self._state_at

    def _check_state(self) -> None:
        """Precondition hook run before every iteration."""

    def _effective_weights(
        self,
        sqdist_new: NDArray[np.float64],
        previous: NDArray[np.float64] | None,
    ) -> NDArray[np.float64]:
        """Weights for a configuration with squared distances sqdist_new."""
        return self._base_weights

    def _active_pairs(self, weights: NDArray[np.float64]) -> int | None:
        return None

    def _evaluate(
        self,
        x: NDArray[np.float64],
        d: NDArray[np.float64],
        w: NDArray[np.float64],
    ) -> MajorizerState:
        """Optimal scaling, α and σ for a configuration."""
        e = mk_power(d, self._r)
        dhat_vec = self._transform.fit(lower_triangle(e), lower_triangle(w))
        dhat = from_lower_triangle(dhat_vec, self._n)

        rho = float(np.sum(w * dhat * e))
        eta = float(np.sum(w * e * e))
        with np.errstate(invalid="ignore", divide="ignore"):
            alpha = rho / eta if eta != 0 else float("nan")
        stress = 1.0 - 2.0 * alpha * rho + alpha * alpha * eta

        return MajorizerState(conf=x, sqdist=d, dhat=dhat, weights=w, alpha=alpha, stress=stress)


@dataclass(frozen=True, slots=True)
class MajorizerTrace:
    """Complete trace of a majorization run."""

    iterations: int
    """Iteration count belonging to the returned state."""

    state: MajorizerState
    """Returned (lower-stress) state."""

    converged: bool
    """Whether the stress change fell below acc (False after a rejected step)."""

    rejected_steps: int
    """Number of rejected steps."""

    history: list[dict[str, Any]]
    """Per-iteration metrics."""


@dataclass(frozen=True, slots=True)
class MajorizerSetup:
    """Validated inputs of a majorization solve."""

    delta: NDArray[np.float64]
    tdelta: NDArray[np.float64]
    labels: tuple[str, ...]
    weightmat: NDArray[np.float64]
    weights: NDArray[np.float64]
    transform: OptimalScaling
    init: NDArray[np.float64]
    kappa: float
    lambda_: float
    nu: float
    type: TransformType
    ties: TieHandling


def prepare_majorizer(
    delta: ArrayLike | pd.DataFrame,
    *,
    kappa: float,
    lambda_: float,
    nu: float,
    type: TransformType | str,
    ties: TieHandling | str,
    weightmat: ArrayLike | pd.DataFrame | None,
    init: ArrayLike | pd.DataFrame | None,
    ndim: int,
    spline_degree: int,
    spline_int_knots: int,
    random_state: int | np.random.Generator | None,
) -> MajorizerSetup:
    """Validate inputs, power-transform and normalize, prepare the transform.

    Raises:
        ValidationError: On any violated precondition.
    """
    dis = as_dissimilarities(delta)
    n = dis.n
    weightmat_arr = as_weight_matrix(weightmat, n)

    check_positive(kappa, "kappa")
    check_positive(lambda_, "lambda")
    if not np.isfinite(nu):
        raise ValidationError(f"The nu parameter must be finite, got {nu}")
    check_ndim(ndim, n)

    kind = parse_transform(type)
    tie_mode = parse_ties(ties)
    if kind in (TransformType.ORDINAL, TransformType.SPLINE) and lambda_ != 1:
        logger.info("lambda={} is ignored for {} transforms; using lambda=1", lambda_, kind.value)
        lambda_ = 1.0

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        weights = weightmat_arr**nu
    weights[~np.isfinite(weights)] = 0.0
    np.fill_diagonal(weights, 0.0)

    powered = dis.matrix**lambda_
    norm = enorm(powered, weights)
    if not norm > 0:
        raise ValidationError("delta has no positive weighted dissimilarities")
    tdelta = powered / norm

    transform = create_transform(
        kind,
        lower_triangle(tdelta),
        ties=tie_mode,
        spline_degree=spline_degree,
        spline_int_knots=spline_int_knots,
        normq=get_default("dhat_norm"),
    )

    start = as_configuration(init, n, ndim)
    if start is None:
        start = classical_scaling(
            tdelta,
            ndim,
            random_state=random_state,
            noise=float(get_default("init_noise")),
        )
    if not enorm(start) > 0:
        raise ValidationError("init must not be the zero configuration")

    return MajorizerSetup(
        delta=dis.matrix,
        tdelta=tdelta,
        labels=dis.labels,
        weightmat=weightmat_arr,
        weights=weights,
        transform=transform,
        init=start,
        kappa=float(kappa),
        lambda_=float(lambda_),
        nu=float(nu),
        type=kind,
        ties=tie_mode,
    )


def run_majorizer(
    engine: PowerStressMajorizer,
    *,
    acc: float,
    itmax: int,
    verbose: int = 0,
) -> MajorizerTrace:
    """Iterate an engine until |Δσ| < acc or itmax iterations.

    Args:
        engine: Majorization engine (plain or sparsified).
        acc: Stress-change threshold.
        itmax: Iteration cap.
        verbose: > 2 logs every iteration.

    Returns:
        MajorizerTrace with the lower-stress of the last two states.
    """
    history: list[dict[str, Any]] = []
    rejected = 0
    converged = False
    previous_stress = engine.state.stress

    for _ in range(itmax):
        iter_result = engine.iterate()
        history.append(iter_result.to_dict())

        if verbose > 2:
            logger.debug(
                "{:>4d} {:.10f} {:.10f}",
                iter_result.iteration,
                previous_stress,
                iter_result.stress,
            )
        previous_stress = iter_result.stress

        # A rejected step ends the run without counting as convergence
        if iter_result.step_rejected:
            rejected += 1
            break

        if abs(iter_result.change) < acc:
            converged = True
            break
    else:
        msg = f"Iteration limit reached ({itmax}); you may want to increase itmax"
        logger.warning(msg)
        warnings.warn(msg, IterationLimitWarning, stacklevel=3)

    state, iterations = engine.best_state()

    return MajorizerTrace(
        iterations=iterations,
        state=state,
        converged=converged,
        rejected_steps=rejected,
        history=history,
    )


def build_majorizer_result(
    setup: MajorizerSetup,
    trace: MajorizerTrace,
    *,
    model: str,
    parameters: dict[str, float],
    principal: bool,
    call: CallRecord,
    tweightmat: NDArray[np.float64] | None = None,
    verbose: int = 0,
) -> MDSResult:
    """Assemble the MDSResult of a majorization solve."""
    state = trace.state
    r = setup.kappa / 2.0

    conf = state.conf / enorm(state.conf)
    confdist = mk_power(sqdist(conf), r)
    decomposition = stress_per_point(state.dhat, confdist, state.weights)

    if principal:
        _, _, vt = np.linalg.svd(conf, full_matrices=False)
        conf = conf @ vt.T

    if verbose > 1:
        logger.info(
            "*** Stress: {:.10f}; Stress-1 (default reported): {:.10f}",
            state.stress,
            np.sqrt(state.stress),
        )

    type_label = setup.type.value
    if setup.type is TransformType.ORDINAL:
        type_label = f"ordinal ({setup.ties.value})"

    return MDSResult(
        delta=setup.delta,
        tdelta=setup.tdelta,
        dhat=state.dhat,
        confdist=confdist,
        conf=conf,
        labels=setup.labels,
        stress=float(np.sqrt(state.stress)),
        stress_m=float(state.stress),
        stress_r=None,
        spp=decomposition.spp,
        resmat=decomposition.resmat,
        rss=decomposition.rss,
        ndim=conf.shape[1],
        nobj=conf.shape[0],
        niter=trace.iterations,
        model=model,
        type=type_label,
        parameters=parameters,
        weightmat=setup.weightmat,
        tweightmat=tweightmat,
        init=setup.init,
        alpha=float(state.alpha),
        trace=tuple(entry["stress"] for entry in trace.history),
        history=tuple(trace.history),
        converged=trace.converged,
        rejected_steps=trace.rejected_steps,
        call=call,
    )


def run_power_stress(
    delta: ArrayLike | pd.DataFrame,
    *,
    kappa: float = 1.0,
    lambda_: float = 1.0,
    nu: float = 1.0,
    type: TransformType | str = "ratio",
    ties: TieHandling | str = "primary",
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
    """Fit a power-stress MDS model by majorization.

    Args:
        delta: Dissimilarities (matrix, DataFrame or condensed vector).
        kappa: Exponent of the fitted distances (> 0).
        lambda_: Exponent of the dissimilarities (> 0; forced to 1 for
            ordinal and spline transforms).
        nu: Exponent of the weights.
        type: 'ratio', 'interval', 'ordinal' or 'spline'.
        ties: Tie handling for ordinal transforms.
        weightmat: Symmetric weights (default 1 - I).
        init: Starting configuration (default: classical scaling).
        ndim: Dimension of the configuration (≤ n - 1).
        acc: Stress-change threshold (default 1e-6).
        itmax: Iteration cap (default 10000).
        verbose: Logging level (see stress_lab logging conventions).
        principal: Rotate the final configuration to principal axes.
        spline_degree: Degree of the spline transform.
        spline_int_knots: Interior knots of the spline transform.
        random_state: Seed or Generator for the default initializer.

    Returns:
        MDSResult with model "Power-Stress SMACOF".

    Raises:
        ValidationError: On invalid input or hyperparameters.

    Example:
        >>> from stress_lab.data.examples import FIVE_POINT_DELTA
        >>> result = run_power_stress(FIVE_POINT_DELTA, kappa=2, random_state=1)
        >>> result.conf.shape
        (5, 2)
    """
    spec = get_spec(ModelFamily.POWER_STRESS)
    acc = spec.acc if acc is None else acc
    itmax = spec.itmax if itmax is None else itmax

    call = CallRecord.capture(
        "run_power_stress",
        delta=delta,
        kappa=kappa,
        lambda_=lambda_,
        nu=nu,
        type=type,
        ties=ties,
        weightmat=weightmat,
        init=init,
        ndim=ndim,
        acc=acc,
        itmax=itmax,
        principal=principal,
        random_state=random_state,
    )

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

    if verbose > 0:
        logger.info(
            "Fitting {} power stress with kappa={} lambda={} nu={}",
            setup.type.value,
            setup.kappa,
            setup.lambda_,
            setup.nu,
        )

    engine = PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=setup.kappa)
    trace = run_majorizer(engine, acc=acc, itmax=itmax, verbose=verbose)

    return build_majorizer_result(
        setup,
        trace,
        model=spec.label,
        parameters={"kappa": setup.kappa, "lambda": setup.lambda_, "nu": setup.nu},
        principal=principal,
        call=call,
        verbose=verbose,
    )


__all__ = [
    "MajorizerState",
    "MajorizerTrace",
    "MajorizerSetup",
    "PowerStressMajorizer",
    "prepare_majorizer",
    "run_majorizer",
    "build_majorizer_result",
    "run_power_stress",
]
