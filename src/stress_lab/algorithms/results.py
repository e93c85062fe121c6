"""Result records shared by all solvers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from stress_lab.data.inputs import summarize_argument

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(frozen=True, slots=True)
class IterationResult:
    """Result of a single solver iteration."""

    iteration: int
    """1-based iteration number."""

    stress: float
    """Stress after the iteration (the kept value if the step was rejected)."""

    change: float
    """Previous stress minus current stress."""

    step_rejected: bool
    """True if the candidate state was discarded."""

    active_pairs: int | None = None
    """Pairs with non-zero weight (sparsified majorizer only)."""

    stepsize: float | None = None
    """Step size used for the trial point (Box-Cox descent only)."""

    def to_dict(self) -> dict[str, Any]:
        """History entry for traces."""
        entry: dict[str, Any] = {
            "iteration": self.iteration,
            "stress": self.stress,
            "change": self.change,
            "step_rejected": self.step_rejected,
        }
        if self.active_pairs is not None:
            entry["active_pairs"] = self.active_pairs
        if self.stepsize is not None:
            entry["stepsize"] = self.stepsize
        return entry


@dataclass(frozen=True, slots=True)
class CallRecord:
    """Reproducible description of a solver call."""

    function: str
    """Name of the public function that produced the result."""

    arguments: dict[str, Any] = field(default_factory=dict)
    """Arguments with arrays summarized by shape."""

    @classmethod
    def capture(cls, function: str, **arguments: Any) -> CallRecord:
        """Record a call, summarizing arrays and enums."""
        return cls(
            function=function,
            arguments={name: summarize_argument(value) for name, value in arguments.items()},
        )

    def __str__(self) -> str:
        args = ", ".join(f"{name}={value!r}" for name, value in self.arguments.items())
        return f"{self.function}({args})"


@dataclass(frozen=True, slots=True)
class MDSResult:
    """Fitted configuration with diagnostics and convergence metadata.

    Matrices are dense n×n arrays; `delta` is the input as given, `tdelta`
    the explicitly transformed and normalized dissimilarities, `dhat` the
    optimally scaled disparities and `confdist` the (transformed) fitted
    distances of `conf`.
    """

    delta: NDArray[np.float64]
    tdelta: NDArray[np.float64]
    dhat: NDArray[np.float64]
    confdist: NDArray[np.float64]
    conf: NDArray[np.float64]
    labels: tuple[str, ...]
    stress: float
    """Reported stress (square root of stress_m)."""
    stress_m: float
    """Normalized stress."""
    stress_r: float | None
    """Raw (unnormalized) stress, where the model has one."""
    spp: NDArray[np.float64]
    resmat: NDArray[np.float64]
    rss: float
    ndim: int
    nobj: int
    niter: int
    model: str
    type: str
    parameters: dict[str, float]
    weightmat: NDArray[np.float64]
    """Weights as supplied (1 - I by default)."""
    tweightmat: NDArray[np.float64] | None
    """Effective weights at termination (sparsified models only)."""
    init: NDArray[np.float64] | None
    """Starting configuration."""
    alpha: float | None
    """Optimal scale of the fitted distances (majorizers only)."""
    trace: tuple[float, ...]
    """Stress after every iteration."""
    history: tuple[dict[str, Any], ...]
    """Per-iteration metrics."""
    converged: bool
    """Whether the stopping rule was met; a rejected majorization step also
    ends the run but leaves this False."""
    rejected_steps: int
    call: CallRecord

    def retag(self, model: str, call: CallRecord) -> MDSResult:
        """Copy of the result under another model label and call record."""
        return replace(self, model=model, call=call)

    def to_frame(self) -> pd.DataFrame:
        """Configuration as a DataFrame with object labels and D1..Dd columns."""
        columns = [f"D{k}" for k in range(1, self.ndim + 1)]
        return pd.DataFrame(self.conf, index=list(self.labels), columns=columns)

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a dictionary for JSON serialization."""
        return {
            "metadata": {
                "model": self.model,
                "type": self.type,
                "parameters": {k: float(v) for k, v in self.parameters.items()},
                "call": str(self.call),
                "nobj": self.nobj,
                "ndim": self.ndim,
            },
            "summary": {
                "stress": self.stress,
                "stress_m": self.stress_m,
                "stress_r": self.stress_r,
                "rss": self.rss,
                "alpha": self.alpha,
                "niter": self.niter,
                "converged": self.converged,
                "rejected_steps": self.rejected_steps,
            },
            "labels": list(self.labels),
            "conf": self.conf.tolist(),
            "spp": self.spp.tolist(),
            "trace": list(self.trace),
            "history": list(self.history),
        }

    def __str__(self) -> str:
        return (
            f"{self.model} ({self.type}): stress={self.stress:.6f}, "
            f"niter={self.niter}, nobj={self.nobj}, ndim={self.ndim}"
        )


__all__ = [
    "IterationResult",
    "CallRecord",
    "MDSResult",
]
