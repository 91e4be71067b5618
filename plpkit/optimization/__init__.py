"""Hyperparameter grid construction and model selection."""

from plpkit.optimization.grid import HyperparameterSpace, as_candidates, build_grid, grid_size
from plpkit.optimization.selector import (
    ModelSelector,
    SelectionResult,
    choose_best,
    distance_from_chance,
)

__all__ = [
    "HyperparameterSpace",
    "as_candidates",
    "build_grid",
    "grid_size",
    "ModelSelector",
    "SelectionResult",
    "choose_best",
    "distance_from_chance",
]
