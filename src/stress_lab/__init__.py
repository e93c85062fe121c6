"""Stress Lab: power-stress, sparsified and Box-Cox multidimensional scaling."""

__version__ = "0.1.0"

from loguru import logger

from stress_lab.algorithms import (
    MDSResult,
    TauAnnealing,
    anneal_sparsified_power_stress,
    anneal_sparsified_stress,
    classical_scaling,
    run_box_cox,
    run_power_stress,
    run_sparsified_power_stress,
    run_sparsified_stress,
    stress_per_point,
)
from stress_lab.exceptions import (
    EmptyNeighborhoodError,
    IterationLimitWarning,
    StressLabError,
    ValidationError,
)

# Library code stays silent unless the application enables it
logger.disable("stress_lab")

__all__ = [
    "__version__",
    "MDSResult",
    "TauAnnealing",
    "anneal_sparsified_power_stress",
    "anneal_sparsified_stress",
    "classical_scaling",
    "run_box_cox",
    "run_power_stress",
    "run_sparsified_power_stress",
    "run_sparsified_stress",
    "stress_per_point",
    "EmptyNeighborhoodError",
    "IterationLimitWarning",
    "StressLabError",
    "ValidationError",
]
