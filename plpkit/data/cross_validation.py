"""
Fold assignment for populations that arrive without one.

Design Decision: Stratified K-Fold on the outcome

- Each fold has a similar outcome prevalence, so the pooled out-of-fold AUC
  is not dominated by a fold that happens to hold few outcomes
- Fold indices are 1-based; 0 stays reserved for excluded rows
- Same random seed gives the same assignment

Example:
    Population of 1000 rows, 30 with the outcome, n_folds=3
    - Every fold receives ~333 rows and 10 outcomes
"""

import logging

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, StratifiedKFold

from plpkit.data.population import FOLD, labels, validate_population
from plpkit.exceptions import InvalidConfiguration

logger = logging.getLogger(__name__)


def assign_folds(
    population: pd.DataFrame,
    n_folds: int = 3,
    seed: int = 42,
) -> pd.DataFrame:
    """
    Assign every row of a population to one of n_folds folds.

    Args:
        population: Population table (rowId, outcomeCount, ...)
        n_folds: Number of folds (>= 2)
        seed: Random seed for the shuffle

    Returns:
        Copy of the population with an indexes column holding 1..n_folds

    Raises:
        InvalidConfiguration: If n_folds < 2 or exceeds the number of rows
    """
    validate_population(population)

    if n_folds < 2:
        raise InvalidConfiguration(f"n_folds must be >= 2, got {n_folds}")
    if n_folds > len(population):
        raise InvalidConfiguration(
            f"n_folds ({n_folds}) cannot exceed population size ({len(population)})"
        )

    y = labels(population)
    positives = int(y.sum())
    minority = min(positives, len(y) - positives)

    if minority >= n_folds:
        splitter = StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=seed)
    else:
        logger.warning(
            f"Only {minority} rows in the minority class - "
            f"falling back to unstratified {n_folds}-fold assignment"
        )
        splitter = KFold(n_splits=n_folds, shuffle=True, random_state=seed)

    folds = np.zeros(len(population), dtype=int)
    for fold_idx, (_, val_idx) in enumerate(splitter.split(np.zeros(len(y)), y)):
        folds[val_idx] = fold_idx + 1

    logger.info(f"Assigned {len(population)} rows to {n_folds} folds")
    logger.info(f"  Outcomes: {positives} ({y.mean():.1%})")

    population = population.copy()
    population[FOLD] = folds
    return population
