"""Box-Cox stress minimization by normalized gradient descent.

Box-Cox stress with parameters (μ, λ, ρ), λ > 0, is

    S(X) = Σ Δ^ρ·BC_{μ+λ}(d_ij) - Σ Δ^{ρ+λ}·BC_μ(d_ij)

with the Box-Cox transform BC_p(d) = (d^p - 1)/p and BC_0(d) = log(d). The
log forms are needed exactly on the boundaries μ + λ = 0 and μ = 0, so the
closed form is one of three branches, resolved once per solve.

The loss has no convenient majorizing quadratic, so the solver takes steps
along the gradient rescaled to the norm of the configuration, halving the
step size after a non-improving trial and growing it by 5% after an
improving one. The solve ends when the step size falls below acc.

References:
- Chen, L. & Buja, A.: "Stress Functions for Nonlinear Dimension Reduction,
  Proximity Analysis, and Graph Drawing" (2013), JMLR 14
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np
from loguru import logger

from stress_lab.algorithms.diagnostics import stress_per_point
from stress_lab.algorithms.initializer import classical_scaling
from stress_lab.algorithms.matrices import enorm, offdiag_power, pairwise_distances
from stress_lab.algorithms.results import CallRecord, IterationResult, MDSResult
from stress_lab.data.inputs import (
    as_configuration,
    as_dissimilarities,
    as_weight_matrix,
    check_ndim,
    check_positive,
)
from stress_lab.data.model_types import ModelFamily, get_default, get_spec
from stress_lab.exceptions import IterationLimitWarning, ValidationError

if TYPE_CHECKING:
    import pandas as pd
    from numpy.typing import ArrayLike, NDArray


class BoxCoxBranch(Enum):
    """Closed form of the Box-Cox stress for a parameter set."""

    LOG_ATTRACTION = "log_attraction"  # mu + lambda == 0
    LOG_REPULSION = "log_repulsion"  # mu == 0
    GENERAL = "general"

    @classmethod
    def resolve(cls, mu: float, lambda_: float) -> BoxCoxBranch:
        """Branch for the exponents (mu, lambda)."""
        if mu + lambda_ == 0:
            return cls.LOG_ATTRACTION
        if mu == 0:
            return cls.LOG_REPULSION
        return cls.GENERAL


def box_cox_stress(
    d: NDArray[np.floating],
    dnu: NDArray[np.floating],
    dnulam: NDArray[np.floating],
    mu: float,
    lambda_: float,
    branch: BoxCoxBranch | None = None,
) -> float:
    """Box-Cox stress of the fitted distances d.

    Args:
        d: n×n fitted distances.
        dnu: n×n attraction weights W·Δ^ρ (zero diagonal).
        dnulam: n×n repulsion weights W·Δ^(ρ+λ) (zero diagonal).
        mu: Repulsion exponent.
        lambda_: Box-Cox exponent (> 0).
        branch: Pre-resolved branch (resolved from mu and lambda_ if None).

    Returns:
        Raw stress value (inf or nan for degenerate configurations).
    """
    if branch is None:
        branch = BoxCoxBranch.resolve(mu, lambda_)

    ml = mu + lambda_
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if branch is BoxCoxBranch.LOG_ATTRACTION:
            attraction = np.sum(dnu * _offdiag_log(d))
            repulsion = np.sum((offdiag_power(d, mu) - 1.0) * dnulam) / mu
        elif branch is BoxCoxBranch.LOG_REPULSION:
            attraction = np.sum(dnu * (offdiag_power(d, ml) - 1.0)) / ml
            repulsion = np.sum(_offdiag_log(d) * dnulam)
        else:
            attraction = np.sum(dnu * (offdiag_power(d, ml) - 1.0)) / ml
            repulsion = np.sum((offdiag_power(d, mu) - 1.0) * dnulam) / mu

    return float(attraction - repulsion)


class BoxCoxDescent:
    """Normalized gradient descent engine with step halving.

    Example:
        >>> engine = BoxCoxDescent(delta, weights, conf, mu=1.0, lambda_=1.0, rho=0.0)
        >>> while engine.stepsize > 1e-5 and engine.iteration < 2000:
        ...     result = engine.step()
    """

    __slots__ = (
        "_mu",
        "_lambda",
        "_branch",
        "_dnu",
        "_dnulam",
        "_conf",
        "_stress",
        "_direction",
        "_stepsize",
        "_iteration",
    )

    def __init__(
        self,
        delta: NDArray[np.floating],
        weights: NDArray[np.floating],
        conf: NDArray[np.floating],
        *,
        mu: float,
        lambda_: float,
        rho: float,
        stepsize: float | None = None,
    ) -> None:
        """Initialize the engine at a starting configuration.

        Args:
            delta: n×n dissimilarities.
            weights: n×n weights (zero diagonal).
            conf: Starting configuration (used as given).
            mu: Repulsion exponent.
            lambda_: Box-Cox exponent (> 0).
            rho: Exponent of the dissimilarity weights.
            stepsize: Initial step size (default 0.1).
        """
        self._mu = float(mu)
        self._lambda = float(lambda_)
        self._branch = BoxCoxBranch.resolve(self._mu, self._lambda)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            self._dnu = weights * offdiag_power(delta, rho)
            self._dnulam = weights * offdiag_power(delta, rho + lambda_)
        np.fill_diagonal(self._dnu, 0.0)
        np.fill_diagonal(self._dnulam, 0.0)

        self._conf = np.array(conf, dtype=np.float64, copy=True)
        self._stress = self.stress_of(self._conf)
        self._direction = self._normalized_gradient(self._conf)
        self._stepsize = float(get_default("initial_stepsize") if stepsize is None else stepsize)
        self._iteration = 0

    @property
    def branch(self) -> BoxCoxBranch:
        """Closed form used for the stress."""
        return self._branch

    @property
    def conf(self) -> NDArray[np.float64]:
        """Last accepted configuration."""
        return self._conf

    @property
    def stress(self) -> float:
        """Stress of the last accepted configuration."""
        return self._stress

    @property
    def stepsize(self) -> float:
        """Step size of the next trial."""
        return self._stepsize

    @property
    def iteration(self) -> int:
        """Number of steps taken."""
        return self._iteration

    @property
    def attraction_weights(self) -> NDArray[np.float64]:
        """W·Δ^ρ."""
        return self._dnu

    @property
    def repulsion_weights(self) -> NDArray[np.float64]:
        """W·Δ^(ρ+λ)."""
        return self._dnulam

    def stress_of(self, conf: NDArray[np.floating]) -> float:
        """Box-Cox stress of a configuration."""
        return box_cox_stress(
            pairwise_distances(conf),
            self._dnu,
            self._dnulam,
            self._mu,
            self._lambda,
            self._branch,
        )

    def step(self) -> IterationResult:
        """Take one trial step and accept or reject it.

        The first two trials are always accepted (when finite); later ones
        only if they lower the stress of the last accepted configuration.

        Returns:
            IterationResult with the accepted stress and the step size used.
        """
        stepsize = self._stepsize
        trial = self._conf - stepsize * self._direction
        trial_stress = self.stress_of(trial)

        accept = bool(np.isfinite(trial_stress)) and (self._iteration < 2 or trial_stress < self._stress)
        self._iteration += 1

        if accept:
            change = self._stress - trial_stress
            self._conf = trial
            self._stress = trial_stress
            self._direction = self._normalized_gradient(trial)
            self._stepsize = stepsize * float(get_default("step_growth"))
        else:
            change = 0.0
            self._stepsize = stepsize * float(get_default("step_shrink"))

        return IterationResult(
            iteration=self._iteration,
            stress=self._stress,
            change=change,
            step_rejected=not accept,
            stepsize=stepsize,
        )

    def _normalized_gradient(self, conf: NDArray[np.float64]) -> NDArray[np.float64]:
        """Gradient of the stress, rescaled to the norm of conf."""
        d = pairwise_distances(conf)
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            m = self._dnu * offdiag_power(d, self._mu + self._lambda - 2.0)
            m = m - offdiag_power(d, self._mu - 2.0) * self._dnulam
            grad = conf * m.sum(axis=1)[:, None] - m @ conf
            scale = enorm(conf) / enorm(grad)

        if not np.isfinite(scale) or not np.all(np.isfinite(grad)):
            # Stationary or degenerate point: trials stay put and get rejected
            return np.zeros_like(conf)
        return scale * grad


@dataclass(frozen=True, slots=True)
class BoxCoxTrace:
    """Complete trace of a Box-Cox descent."""

    iterations: int
    """Steps taken."""

    conf: NDArray[np.float64]
    """Last accepted configuration (before the final rescale)."""

    stress: float
    """Raw stress of conf."""

    converged: bool
    """Whether the step size fell below acc."""

    rejected_steps: int
    """Number of rejected trials."""

    history: list[dict[str, Any]]
    """Per-iteration metrics."""


def run_box_cox_descent(
    engine: BoxCoxDescent,
    *,
    acc: float,
    itmax: int,
    verbose: int = 0,
) -> BoxCoxTrace:
    """Step an engine until the step size is at most acc or itmax steps."""
    history: list[dict[str, Any]] = []
    rejected = 0

    while engine.stepsize > acc and engine.iteration < itmax:
        iter_result = engine.step()
        history.append(iter_result.to_dict())
        rejected += int(iter_result.step_rejected)

        if verbose > 2:
            logger.debug(
                "niter={} stress={:.5f} stepsize={:.3g}",
                iter_result.iteration,
                iter_result.stress,
                iter_result.stepsize,
            )

    converged = engine.stepsize <= acc
    if not converged:
        msg = f"Iteration limit reached ({itmax}); you may want to increase itmax"
        logger.warning(msg)
        warnings.warn(msg, IterationLimitWarning, stacklevel=3)

    return BoxCoxTrace(
        iterations=engine.iteration,
        conf=engine.conf,
        stress=engine.stress,
        converged=converged,
        rejected_steps=rejected,
        history=history,
    )


def run_box_cox(
    delta: ArrayLike | pd.DataFrame,
    *,
    mu: float = 1.0,
    lambda_: float = 1.0,
    rho: float = 0.0,
    weightmat: ArrayLike | pd.DataFrame | None = None,
    ndim: int = 2,
    itmax: int | None = None,
    init: ArrayLike | pd.DataFrame | None = None,
    verbose: int = 0,
    add_d0: float | None = None,
    principal: bool = False,
    normconf: bool = False,
    acc: float | None = None,
    random_state: int | np.random.Generator | None = None,
) -> MDSResult:
    """Fit a Box-Cox MDS model.

    Args:
        delta: Dissimilarities (matrix, DataFrame or condensed vector).
        mu: Repulsion exponent.
        lambda_: Box-Cox exponent (> 0).
        rho: Exponent of the dissimilarity weights.
        weightmat: Symmetric weights (default 1 - I).
        ndim: Dimension of the configuration.
        itmax: Iteration cap (default 2000).
        init: Starting configuration (default: classical scaling with noise).
        verbose: Logging level.
        add_d0: Distance of the collapsed reference configuration used to
            normalize the stress (default 1e-4).
        principal: Rotate the final configuration to principal axes.
        normconf: Rescale the returned configuration to unit norm.
        acc: Step-size floor (default 1e-5).
        random_state: Seed or Generator for the default initializer.

    Returns:
        MDSResult with model "Box-Cox MDS".

    Raises:
        ValidationError: If lambda_ <= 0 or the input is invalid.
    """
    spec = get_spec(ModelFamily.BOX_COX)
    acc = spec.acc if acc is None else acc
    itmax = spec.itmax if itmax is None else itmax
    add_d0 = float(get_default("add_d0") if add_d0 is None else add_d0)

    call = CallRecord.capture(
        "run_box_cox",
        delta=delta,
        mu=mu,
        lambda_=lambda_,
        rho=rho,
        weightmat=weightmat,
        ndim=ndim,
        itmax=itmax,
        init=init,
        add_d0=add_d0,
        principal=principal,
        normconf=normconf,
        acc=acc,
        random_state=random_state,
    )

    dis = as_dissimilarities(delta)
    n = dis.n
    weights = as_weight_matrix(weightmat, n)
    weights[~np.isfinite(weights)] = 0.0

    check_positive(lambda_, "lambda")
    if not (np.isfinite(mu) and np.isfinite(rho)):
        raise ValidationError(f"mu and rho must be finite, got mu={mu}, rho={rho}")
    check_positive(add_d0, "add_d0")
    check_ndim(ndim, n)

    if verbose > 0:
        logger.info("Minimizing Box-Cox stress with mu={} lambda={} rho={}", mu, lambda_, rho)

    start = as_configuration(init, n, ndim)
    if start is None:
        start = classical_scaling(
            dis.matrix,
            ndim,
            random_state=random_state,
            noise=float(get_default("init_noise")),
        )
    start_norm = enorm(pairwise_distances(start))
    if not start_norm > 0:
        raise ValidationError("init must not place every object at the same point")
    conf = start * enorm(dis.matrix) / start_norm

    engine = BoxCoxDescent(dis.matrix, weights, conf, mu=mu, lambda_=lambda_, rho=rho)
    trace = run_box_cox_descent(engine, acc=acc, itmax=itmax, verbose=verbose)

    # Match the scale of the dissimilarities
    dnu = engine.attraction_weights
    d = pairwise_distances(trace.conf)
    conf = trace.conf * float(np.sum(dnu * dis.matrix * d)) / float(np.sum(dnu * d * d))
    confdist = pairwise_distances(conf)

    collapsed = np.full((n, n), add_d0)
    np.fill_diagonal(collapsed, 0.0)
    stress_collapsed = box_cox_stress(collapsed, dnu, engine.repulsion_weights, mu, lambda_, engine.branch)
    stress_perfect = box_cox_stress(dis.matrix, dnu, engine.repulsion_weights, mu, lambda_, engine.branch)
    stress_m = (trace.stress - stress_perfect) / (stress_collapsed - stress_perfect)

    decomposition = stress_per_point(dis.matrix, confdist, weights)

    if normconf:
        conf = conf / enorm(conf)
    if principal:
        _, _, vt = np.linalg.svd(conf, full_matrices=False)
        conf = conf @ vt.T

    if verbose > 1:
        logger.info("*** Stress: {:.10f}; normalized: {:.10f}", trace.stress, stress_m)

    return MDSResult(
        delta=dis.matrix,
        tdelta=dis.matrix,
        dhat=dis.matrix,
        confdist=confdist,
        conf=conf,
        labels=dis.labels,
        stress=float(np.sqrt(max(stress_m, 0.0))),
        stress_m=float(stress_m),
        stress_r=float(trace.stress),
        spp=decomposition.spp,
        resmat=decomposition.resmat,
        rss=decomposition.rss,
        ndim=ndim,
        nobj=n,
        niter=trace.iterations,
        model=spec.label,
        type="ratio",
        parameters={"mu": float(mu), "lambda": float(lambda_), "rho": float(rho)},
        weightmat=weights,
        tweightmat=None,
        init=start,
        alpha=None,
        trace=tuple(entry["stress"] for entry in trace.history),
        history=tuple(trace.history),
        converged=trace.converged,
        rejected_steps=trace.rejected_steps,
        call=call,
    )


def _offdiag_log(d: NDArray[np.floating]) -> NDArray[np.float64]:
    """log(d) off the diagonal, zero on it."""
    safe = np.array(d, dtype=np.float64, copy=True)
    np.fill_diagonal(safe, 1.0)
    with np.errstate(divide="ignore"):
        return np.log(safe)


__all__ = [
    "BoxCoxBranch",
    "box_cox_stress",
    "BoxCoxDescent",
    "BoxCoxTrace",
    "run_box_cox_descent",
    "run_box_cox",
]
