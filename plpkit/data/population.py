"""
Population tables.

A population is a DataFrame with one row per prediction target:

    subjectId | rowId | outcomeCount | indexes

rowId is unique and defines the row order that feature matrices align to.
indexes is the fold index: positive values are folds, 0 (or negative) marks
a row excluded from training.
"""

import logging
from typing import List, Sequence

import numpy as np
import pandas as pd

from plpkit.exceptions import IncompatibleDataFormat

logger = logging.getLogger(__name__)

SUBJECT_ID = "subjectId"
ROW_ID = "rowId"
OUTCOME = "outcomeCount"
FOLD = "indexes"

REQUIRED_COLUMNS = [ROW_ID, OUTCOME]
SCORING_COLUMNS = [ROW_ID]


def validate_population(
    population: pd.DataFrame,
    required: Sequence[str] = REQUIRED_COLUMNS,
) -> pd.DataFrame:
    """
    Check the population layout.

    Args:
        population: Population table
        required: Columns that must be present

    Raises:
        IncompatibleDataFormat: If the table is not a DataFrame, misses a
            required column, has duplicate rowIds or negative outcome counts
    """
    if not isinstance(population, pd.DataFrame):
        raise IncompatibleDataFormat(
            f"Population must be a pandas DataFrame, got {type(population).__name__}"
        )

    missing = [c for c in required if c not in population.columns]
    if missing:
        raise IncompatibleDataFormat(f"Population is missing columns: {missing}")

    if population[ROW_ID].duplicated().any():
        raise IncompatibleDataFormat("Population rowId values must be unique")

    if OUTCOME in population.columns and (population[OUTCOME] < 0).any():
        raise IncompatibleDataFormat("Population outcomeCount must be non-negative")

    return population


def ensure_fold_column(population: pd.DataFrame) -> pd.DataFrame:
    """
    Return a population that carries a fold column.

    A population without one gets every row placed in fold 1, which makes
    cross-validation degrade to in-sample scoring.
    """
    if FOLD in population.columns:
        return population

    logger.warning(f"{FOLD} column not present - setting all rows to fold 1")
    population = population.copy()
    population[FOLD] = 1
    return population


def included_rows(population: pd.DataFrame) -> pd.DataFrame:
    """Rows with a positive fold index, in their original order."""
    population = ensure_fold_column(population)
    return population[population[FOLD] > 0].reset_index(drop=True)


def scoring_rows(population: pd.DataFrame) -> pd.DataFrame:
    """
    Rows to score. A population without a fold column is scored whole and
    is not given one.
    """
    if FOLD not in population.columns:
        return population.reset_index(drop=True)
    return population[population[FOLD] > 0].reset_index(drop=True)


def fold_ids(population: pd.DataFrame) -> List[int]:
    """Sorted distinct positive fold indices."""
    if FOLD not in population.columns:
        return []
    folds = population.loc[population[FOLD] > 0, FOLD].unique()
    return sorted(int(f) for f in folds)


def labels(population: pd.DataFrame) -> np.ndarray:
    """Binary outcome labels (outcomeCount > 0) as an int array."""
    return (population[OUTCOME].to_numpy() > 0).astype(int)
