"""Error taxonomy for the stress solvers.

Validation problems are fatal and raised before any iteration starts.
Numerical trouble inside the loop is recovered locally by the engines and
never surfaces here, except for the empty-neighborhood condition of the
sparsified majorizer, which has its own exception type.
"""


class StressLabError(Exception):
    """Base class for all stress-lab errors."""


class ValidationError(StressLabError, ValueError):
    """Input or hyperparameter failed a precondition."""


class EmptyNeighborhoodError(StressLabError):
    """Neighborhood threshold excludes every pair of the configuration.

    Raised by the sparsified majorizer when tau is not larger than the
    smallest transformed fitted distance: every weight would be zero and the
    majorization operator is undefined.
    """

    def __init__(self, tau: float, min_distance: float, iteration: int) -> None:
        self.tau = tau
        self.min_distance = min_distance
        self.iteration = iteration
        super().__init__(
            f"tau={tau:.6g} is not larger than the smallest transformed fitted "
            f"distance {min_distance:.6g} at iteration {iteration}; every pair "
            "would be excluded from the neighborhood. Increase tau."
        )


class IterationLimitWarning(UserWarning):
    """Iteration cap reached before the accuracy threshold."""


__all__ = [
    "StressLabError",
    "ValidationError",
    "EmptyNeighborhoodError",
    "IterationLimitWarning",
]
