"""Stress minimization algorithms.

This module contains implementations of:
- Classical scaling for starting configurations
- Power-stress majorization (generalized SMACOF)
- Sparsified majorization with a neighborhood radius, and its annealing
- Box-Cox stress gradient descent
- Optimal-scaling transforms and the stress-per-point decomposition
"""

from stress_lab.algorithms.annealing import (
    AnnealingTrace,
    EpochResult,
    TauAnnealing,
    anneal_sparsified_power_stress,
    anneal_sparsified_stress,
)
from stress_lab.algorithms.box_cox import (
    BoxCoxBranch,
    BoxCoxDescent,
    BoxCoxTrace,
    box_cox_stress,
    run_box_cox,
    run_box_cox_descent,
)
from stress_lab.algorithms.diagnostics import StressDecomposition, stress_per_point
from stress_lab.algorithms.initializer import classical_scaling, classical_scaling_eigen
from stress_lab.algorithms.optimal_scaling import (
    IntervalScaling,
    OptimalScaling,
    OrdinalScaling,
    RatioScaling,
    SplineScaling,
    create_transform,
)
from stress_lab.algorithms.power_stress import (
    MajorizerSetup,
    MajorizerState,
    MajorizerTrace,
    PowerStressMajorizer,
    run_power_stress,
)
from stress_lab.algorithms.results import CallRecord, IterationResult, MDSResult
from stress_lab.algorithms.sparsified import (
    SparsifiedMajorizer,
    default_tau,
    run_sparsified_power_stress,
    run_sparsified_stress,
)

__all__ = [
    # Annealing
    "AnnealingTrace",
    "EpochResult",
    "TauAnnealing",
    "anneal_sparsified_power_stress",
    "anneal_sparsified_stress",
    # Box-Cox
    "BoxCoxBranch",
    "BoxCoxDescent",
    "BoxCoxTrace",
    "box_cox_stress",
    "run_box_cox",
    "run_box_cox_descent",
    # Diagnostics
    "StressDecomposition",
    "stress_per_point",
    # Initializer
    "classical_scaling",
    "classical_scaling_eigen",
    # Optimal scaling
    "IntervalScaling",
    "OptimalScaling",
    "OrdinalScaling",
    "RatioScaling",
    "SplineScaling",
    "create_transform",
    # Power stress
    "MajorizerSetup",
    "MajorizerState",
    "MajorizerTrace",
    "PowerStressMajorizer",
    "run_power_stress",
    # Results
    "CallRecord",
    "IterationResult",
    "MDSResult",
    # Sparsified
    "SparsifiedMajorizer",
    "default_tau",
    "run_sparsified_power_stress",
    "run_sparsified_stress",
]
