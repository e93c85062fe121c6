"""Tau annealing for the sparsified majorizer.

Runs the sparsified majorizer over a decreasing sequence of neighborhood
radii, handing each solve's configuration to the next one as its starting
configuration. Large radii first fit the global arrangement; the small
radii at the end concentrate the fit on local structure, in the manner of a
self-organizing map shrinking its neighborhood over epochs.

Schedule:
    scalar τ  → linspace(τ, τ/epochs, epochs)
    sequence  → used as given, sorted descending if it is not already
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import numpy as np
from loguru import logger

from stress_lab.algorithms.matrices import lower_triangle
from stress_lab.algorithms.results import CallRecord, MDSResult
from stress_lab.algorithms.sparsified import run_sparsified_power_stress
from stress_lab.data.inputs import as_dissimilarities
from stress_lab.data.model_types import (
    ModelFamily,
    NeighborhoodMode,
    TieHandling,
    TransformType,
    get_default,
    get_spec,
)
from stress_lab.exceptions import ValidationError

if TYPE_CHECKING:
    import pandas as pd
    from numpy.typing import ArrayLike


@dataclass(frozen=True, slots=True)
class EpochResult:
    """Result of the sparsified solve for a single radius."""

    epoch: int
    """1-based epoch number."""

    tau: float
    """Neighborhood radius of the epoch."""

    iterations: int
    """Iterations of the solve."""

    start_stress: float
    """Stress of the warm-started configuration."""

    end_stress: float
    """Normalized stress at the end of the epoch."""

    converged: bool
    """Whether the solve met its accuracy threshold."""

    active_pairs: int
    """Pairs inside the neighborhood at termination."""


@dataclass(frozen=True, slots=True)
class AnnealingTrace:
    """Complete trace of an annealing run."""

    epochs: tuple[EpochResult, ...]
    """Per-radius results, largest radius first."""

    result: MDSResult
    """Result of the last (smallest-radius) solve."""

    @property
    def total_iterations(self) -> int:
        """Iterations summed over all epochs."""
        return sum(e.iterations for e in self.epochs)

    @property
    def taus(self) -> tuple[float, ...]:
        """Radii in the order they were used."""
        return tuple(e.tau for e in self.epochs)

    def to_dict(self) -> dict[str, Any]:
        """Convert trace to dictionary for JSON serialization."""
        return {
            "summary": {
                "epochs": len(self.epochs),
                "total_iterations": self.total_iterations,
                "final_stress": self.result.stress,
            },
            "epochs": [
                {
                    "epoch": e.epoch,
                    "tau": e.tau,
                    "iterations": e.iterations,
                    "start_stress": e.start_stress,
                    "end_stress": e.end_stress,
                    "converged": e.converged,
                    "active_pairs": e.active_pairs,
                }
                for e in self.epochs
            ],
            "result": self.result.to_dict(),
        }


@dataclass
class TauAnnealing:
    """Sparsified majorization over a decreasing sequence of radii.

    Args:
        tau: Largest radius (scalar) or explicit sequence of radii; None uses
            the largest dissimilarity.
        epochs: Number of radii generated from a scalar tau.
        kappa: Exponent of the fitted distances.
        lambda_: Exponent of the dissimilarities.
        nu: Exponent of the weights.
        solver_options: Further keyword arguments of
            run_sparsified_power_stress (type, ties, ndim, acc, ...).

    Example:
        >>> annealing = TauAnnealing(tau=1.0, epochs=5)
        >>> trace = annealing.run(delta)
        >>> len(trace.epochs)
        5
    """

    tau: float | Sequence[float] | None = None
    epochs: int = field(default_factory=lambda: int(get_default("epochs")))
    kappa: float = 1.0
    lambda_: float = 1.0
    nu: float = 1.0
    solver_options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if int(self.epochs) != self.epochs or self.epochs < 1:
            msg = f"epochs must be a positive integer, got {self.epochs}"
            raise ValidationError(msg)

        reserved = {"delta", "tau", "init", "kappa", "lambda_", "nu"} & set(self.solver_options)
        if reserved:
            msg = f"solver_options must not contain {sorted(reserved)}"
            raise ValidationError(msg)

    def schedule(self, delta_max: float) -> tuple[float, ...]:
        """Radii in the order they will be used.

        Args:
            delta_max: Largest dissimilarity, the default maximum radius.

        Returns:
            Non-increasing tuple of radii.
        """
        tau = delta_max if self.tau is None else self.tau
        scalar = np.ndim(tau) == 0
        values = np.atleast_1d(np.asarray(tau, dtype=np.float64))

        if values.size == 0:
            raise ValidationError("tau must not be empty")
        if not np.all(np.isfinite(values)) or np.any(values <= 0):
            raise ValidationError(f"tau values must be positive, got {values.tolist()}")

        # A one-element sequence is an explicit schedule, not a maximum
        if scalar:
            values = np.linspace(values[0], values[0] / self.epochs, int(self.epochs))
        elif np.any(np.diff(values) > 0):
            values = np.sort(values)[::-1]

        return tuple(float(v) for v in values)

    def run(
        self,
        delta: ArrayLike | pd.DataFrame,
        init: ArrayLike | pd.DataFrame | None = None,
    ) -> AnnealingTrace:
        """Execute the annealing schedule.

        Args:
            delta: Dissimilarities.
            init: Starting configuration of the first epoch (default:
                classical scaling).

        Returns:
            AnnealingTrace with one EpochResult per radius.
        """
        delta_max = float(np.max(as_dissimilarities(delta).matrix))
        taus = self.schedule(delta_max)
        verbose = int(self.solver_options.get("verbose", 0))
        options = {k: v for k, v in self.solver_options.items() if k != "verbose"}

        def solve(epoch: int, tau: float, conf: ArrayLike | pd.DataFrame | None) -> MDSResult:
            if verbose > 0:
                logger.info("Epoch {}: tau={}", epoch, tau)
            return run_sparsified_power_stress(
                delta,
                kappa=self.kappa,
                lambda_=self.lambda_,
                nu=self.nu,
                tau=tau,
                init=conf,
                verbose=verbose - 1,
                **options,
            )

        # schedule() never returns an empty tuple
        result = solve(1, taus[0], init)
        epochs = [_epoch_result(1, taus[0], result)]

        for epoch, tau in enumerate(taus[1:], start=2):
            result = solve(epoch, tau, result.conf)
            epochs.append(_epoch_result(epoch, tau, result))

        return AnnealingTrace(epochs=tuple(epochs), result=result)


def anneal_sparsified_power_stress(
    delta: ArrayLike | pd.DataFrame,
    *,
    kappa: float = 1.0,
    lambda_: float = 1.0,
    nu: float = 1.0,
    tau: float | Sequence[float] | None = None,
    epochs: int = 10,
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
    """Annealed sparsified power stress.

    Args:
        delta: Dissimilarities.
        tau: Largest radius or explicit sequence (default: max(delta)).
        epochs: Number of radii generated from a scalar tau.
        Other arguments as in run_sparsified_power_stress.

    Returns:
        Result of the smallest-radius solve, labeled "Annealed Sparsified
        Power-Stress SMACOF".
    """
    call = CallRecord.capture(
        "anneal_sparsified_power_stress",
        delta=delta,
        kappa=kappa,
        lambda_=lambda_,
        nu=nu,
        tau=tau,
        epochs=epochs,
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
    annealing = TauAnnealing(
        tau=tau,
        epochs=epochs,
        kappa=kappa,
        lambda_=lambda_,
        nu=nu,
        solver_options={
            "type": type,
            "ties": ties,
            "neighborhood": neighborhood,
            "weightmat": weightmat,
            "ndim": ndim,
            "acc": acc,
            "itmax": itmax,
            "verbose": verbose,
            "principal": principal,
            "spline_degree": spline_degree,
            "spline_int_knots": spline_int_knots,
            "random_state": random_state,
        },
    )
    trace = annealing.run(delta, init=init)
    return trace.result.retag(get_spec(ModelFamily.ANNEALED).label, call)


def anneal_sparsified_stress(
    delta: ArrayLike | pd.DataFrame,
    *,
    tau: float | Sequence[float] | None = None,
    epochs: int = 10,
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
    """Annealed sparsified stress (κ = λ = ν = 1).

    Returns:
        Result of the smallest-radius solve, labeled "Annealed Sparsified
        SMACOF", with parameters {tau}.
    """
    call = CallRecord.capture(
        "anneal_sparsified_stress",
        delta=delta,
        tau=tau,
        epochs=epochs,
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
    result = anneal_sparsified_power_stress(
        delta,
        tau=tau,
        epochs=epochs,
        type=type,
        ties=ties,
        neighborhood=neighborhood,
        weightmat=weightmat,
        init=init,
        ndim=ndim,
        acc=acc,
        itmax=itmax,
        verbose=verbose,
        principal=principal,
        spline_degree=spline_degree,
        spline_int_knots=spline_int_knots,
        random_state=random_state,
    )
    retagged = result.retag("Annealed Sparsified SMACOF", call)
    return replace(retagged, parameters={"tau": retagged.parameters["tau"]})


def _epoch_result(epoch: int, tau: float, result: MDSResult) -> EpochResult:
    if result.history:
        first = result.history[0]
        start_stress = float(first["stress"] + first["change"])
    else:
        start_stress = result.stress_m

    weights = result.tweightmat if result.tweightmat is not None else result.weightmat
    return EpochResult(
        epoch=epoch,
        tau=tau,
        iterations=result.niter,
        start_stress=start_stress,
        end_stress=result.stress_m,
        converged=result.converged,
        active_pairs=int(np.count_nonzero(lower_triangle(weights))),
    )


__all__ = [
    "EpochResult",
    "AnnealingTrace",
    "TauAnnealing",
    "anneal_sparsified_power_stress",
    "anneal_sparsified_stress",
]
