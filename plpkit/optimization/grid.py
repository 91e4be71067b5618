"""
Hyperparameter grid construction.

The search space is the full cross-product of every parameter's candidate
values. Order is lexicographic over the declaration order of the parameters:
the first parameter varies slowest, the last fastest.

Example:
    >>> grid = build_grid({"hidden_size": [50, 100], "epochs": [20, 50]})
    >>> [c.to_dict() for c in grid]
    [{'hidden_size': 50, 'epochs': 20}, {'hidden_size': 50, 'epochs': 50},
     {'hidden_size': 100, 'epochs': 20}, {'hidden_size': 100, 'epochs': 50}]
"""

import itertools
import math
from typing import Any, List, Mapping, Sequence

from plpkit.exceptions import InvalidConfiguration
from plpkit.types import HyperparameterConfiguration

HyperparameterSpace = Mapping[str, Sequence[Any]]


def as_candidates(value: Any) -> List[Any]:
    """Wrap a scalar as a one-element candidate list; copy sequences to a list."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def grid_size(space: HyperparameterSpace) -> int:
    """Number of configurations build_grid(space) produces."""
    return math.prod(len(values) for values in space.values())


def build_grid(space: HyperparameterSpace) -> List[HyperparameterConfiguration]:
    """
    Expand a hyperparameter space into every configuration.

    Args:
        space: Parameter name -> candidate values, in declaration order

    Returns:
        One HyperparameterConfiguration per combination, none skipped or
        deduplicated

    Raises:
        InvalidConfiguration: If the space is empty or any candidate list is empty
    """
    if not space:
        raise InvalidConfiguration("Hyperparameter space has no parameters")

    names = list(space.keys())
    candidates = []
    for name in names:
        values = list(space[name])
        if not values:
            raise InvalidConfiguration(f"Hyperparameter '{name}' has no candidate values")
        candidates.append(values)

    return [
        HyperparameterConfiguration(dict(zip(names, combination)))
        for combination in itertools.product(*candidates)
    ]
