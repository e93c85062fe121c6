"""Data module for model definitions and input handling."""

from stress_lab.data.inputs import (
    Dissimilarities,
    as_configuration,
    as_dissimilarities,
    as_weight_matrix,
)
from stress_lab.data.model_types import (
    ModelFamily,
    ModelSpec,
    NeighborhoodMode,
    TieHandling,
    TransformType,
    get_default,
    get_spec,
    list_model_families,
    parse_neighborhood,
    parse_ties,
    parse_transform,
)

__all__ = [
    "Dissimilarities",
    "as_configuration",
    "as_dissimilarities",
    "as_weight_matrix",
    "ModelFamily",
    "ModelSpec",
    "NeighborhoodMode",
    "TieHandling",
    "TransformType",
    "get_default",
    "get_spec",
    "list_model_families",
    "parse_neighborhood",
    "parse_ties",
    "parse_transform",
]
