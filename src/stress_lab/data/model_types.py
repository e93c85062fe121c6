"""
Model Family Definitions - Single Source of Truth

This module defines the supported stress model families, optimal-scaling
transform types, tie handling regimes and neighborhood modes, together with
the default iteration controls each solver family starts from.

References:
    - de Leeuw, J. & Mair, P.: "Multidimensional Scaling Using Majorization:
      SMACOF in R" (2009)
    - Chen, L. & Buja, A.: "Stress Functions for Nonlinear Dimension
      Reduction, Proximity Analysis, and Graph Drawing" (2013)
    - Demartines, P. & Hérault, J.: "Curvilinear Component Analysis" (1997)
"""

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from stress_lab.exceptions import ValidationError

E = TypeVar("E", bound=Enum)


class ModelFamily(Enum):
    """Supported stress model families."""

    POWER_STRESS = "power_stress"
    SPARSIFIED = "sparsified"
    ANNEALED = "annealed"
    BOX_COX = "box_cox"


class TransformType(Enum):
    """Optimal-scaling regimes for the dissimilarities."""

    RATIO = "ratio"
    INTERVAL = "interval"
    ORDINAL = "ordinal"
    SPLINE = "spline"


class TieHandling(Enum):
    """Tie handling for ordinal (nonmetric) optimal scaling."""

    PRIMARY = "primary"  # tied dissimilarities may get different dhats
    SECONDARY = "secondary"  # tied dissimilarities share one dhat
    TERTIARY = "tertiary"  # tie-block means are monotone


class NeighborhoodMode(Enum):
    """How the sparsified majorizer treats pairs that left the neighborhood."""

    QUASI = "quasi"  # re-admit a pair whenever it falls back under tau
    RATCHET = "ratchet"  # a zeroed pair stays zeroed for the rest of the solve


@dataclass(frozen=True, slots=True)
class ModelSpec:
    """Specification of a model family."""

    family: ModelFamily
    label: str
    hyperparameters: tuple[str, ...]
    acc: float
    itmax: int
    majorization: bool

    @property
    def n_hyperparameters(self) -> int:
        """Number of exponents/thresholds in theta."""
        return len(self.hyperparameters)


# =============================================================================
# MODEL SPECIFICATIONS
# =============================================================================
# acc is a stress-change threshold for the majorizers and a step-size floor
# for the Box-Cox descent.

_MODEL_SPECS: dict[ModelFamily, ModelSpec] = {
    ModelFamily.POWER_STRESS: ModelSpec(
        family=ModelFamily.POWER_STRESS,
        label="Power-Stress SMACOF",
        hyperparameters=("kappa", "lambda", "nu"),
        acc=1e-6,
        itmax=10000,
        majorization=True,
    ),
    ModelFamily.SPARSIFIED: ModelSpec(
        family=ModelFamily.SPARSIFIED,
        label="Sparsified Power-Stress SMACOF",
        hyperparameters=("kappa", "lambda", "nu", "tau"),
        acc=1e-6,
        itmax=10000,
        majorization=True,
    ),
    ModelFamily.ANNEALED: ModelSpec(
        family=ModelFamily.ANNEALED,
        label="Annealed Sparsified Power-Stress SMACOF",
        hyperparameters=("kappa", "lambda", "nu", "tau"),
        acc=1e-6,
        itmax=10000,
        majorization=True,
    ),
    ModelFamily.BOX_COX: ModelSpec(
        family=ModelFamily.BOX_COX,
        label="Box-Cox MDS",
        hyperparameters=("mu", "lambda", "rho"),
        acc=1e-5,
        itmax=2000,
        majorization=False,
    ),
}


# =============================================================================
# SOLVER DEFAULTS
# =============================================================================

_SOLVER_DEFAULTS: dict[str, float | int] = {
    "ndim": 2,
    "epochs": 10,
    "tau_quantile": 0.9,
    "init_noise": 0.01,
    "spline_degree": 2,
    "spline_int_knots": 2,
    "add_d0": 1e-4,
    "initial_stepsize": 0.1,
    "step_growth": 1.05,
    "step_shrink": 0.5,
    "dhat_norm": 0.5,
}


# =============================================================================
# PUBLIC API
# =============================================================================


def get_spec(family: ModelFamily | str) -> ModelSpec:
    """
    Get the specification for a model family.

    Args:
        family: Model family (enum or string like 'box_cox', 'Box-Cox')

    Returns:
        ModelSpec with labels and default controls

    Raises:
        ValidationError: If the family is unknown

    Example:
        >>> get_spec("box_cox").itmax
        2000
    """
    if isinstance(family, str):
        family = _parse_enum(ModelFamily, family, "model family")
    return _MODEL_SPECS[family]


def get_default(key: str, family: ModelFamily | str | None = None) -> float | int:
    """
    Get a default solver control.

    Family-specific controls ('acc', 'itmax') need the family; the rest are
    shared by every solver.

    Args:
        key: Control name
        family: Model family for family-specific controls

    Returns:
        Default value

    Example:
        >>> get_default("itmax", "power_stress")
        10000
        >>> get_default("epochs")
        10
    """
    if key in ("acc", "itmax"):
        if family is None:
            raise ValidationError(f"Default '{key}' depends on the model family")
        return getattr(get_spec(family), key)

    if key not in _SOLVER_DEFAULTS:
        valid = ["acc", "itmax", *_SOLVER_DEFAULTS]
        raise ValidationError(f"Unknown solver default: {key}. Valid: {valid}")

    return _SOLVER_DEFAULTS[key]


def parse_transform(value: TransformType | str) -> TransformType:
    """Parse a transform type; 'mspline' is accepted as an alias of 'spline'."""
    if isinstance(value, TransformType):
        return value
    if value.lower() == "mspline":
        return TransformType.SPLINE
    return _parse_enum(TransformType, value, "transform type")


def parse_ties(value: TieHandling | str) -> TieHandling:
    """Parse a tie handling regime."""
    if isinstance(value, TieHandling):
        return value
    return _parse_enum(TieHandling, value, "tie handling")


def parse_neighborhood(value: NeighborhoodMode | str) -> NeighborhoodMode:
    """Parse a neighborhood mode."""
    if isinstance(value, NeighborhoodMode):
        return value
    return _parse_enum(NeighborhoodMode, value, "neighborhood mode")


def list_model_families() -> list[ModelFamily]:
    """List model families in dependency order."""
    return [
        ModelFamily.POWER_STRESS,
        ModelFamily.SPARSIFIED,
        ModelFamily.ANNEALED,
        ModelFamily.BOX_COX,
    ]


# =============================================================================
# INTERNAL HELPERS
# =============================================================================


def _parse_enum(enum_type: type[E], name: str, what: str) -> E:
    """Parse a string into a member of enum_type."""
    normalized = name.lower().replace("-", "_").replace(" ", "_")

    for member in enum_type:
        if member.value == normalized:
            return member

    valid = [m.value for m in enum_type]
    raise ValidationError(f"Unknown {what}: '{name}'. Valid: {valid}")
