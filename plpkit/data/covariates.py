"""
Covariate data and feature matrix construction.

Covariates arrive in long format, one row per (rowId, covariateId) pair:

    rowId | covariateId | covariateValue [| timeId]

Design Decisions:

1. Fixed CovariateMap:
   - The covariateId -> column mapping is built once from the training rows
   - Prediction reuses the stored map unchanged, so columns line up with
     the matrix the model was trained on; unseen covariates are dropped

2. Row alignment:
   - Matrix row i is population row i (population order, not rowId order)

3. Sparse by default:
   - Observational covariates are very sparse; CSR keeps memory small
   - Sequence models get a dense (rows, time, covariates) tensor instead
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from scipy import sparse

from plpkit.data.population import ROW_ID
from plpkit.exceptions import IncompatibleDataFormat

logger = logging.getLogger(__name__)

COVARIATE_ID = "covariateId"
COVARIATE_VALUE = "covariateValue"
COVARIATE_NAME = "covariateName"
TIME_ID = "timeId"

COVARIATE_COLUMNS = [ROW_ID, COVARIATE_ID, COVARIATE_VALUE]


@dataclass
class PlpData:
    """
    Covariate data for a cohort.

    Attributes:
        covariates: Long-format covariate values
        covariate_ref: Optional covariateId -> covariateName reference
        metadata: Free-form information carried into the fit result
    """
    covariates: pd.DataFrame
    covariate_ref: Optional[pd.DataFrame] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FeatureMatrix:
    """Sparse matrix row-aligned to a population."""
    matrix: sparse.csr_matrix
    row_ids: np.ndarray
    covariate_map: Dict[Any, int]

    @property
    def n_rows(self) -> int:
        return self.matrix.shape[0]

    @property
    def n_columns(self) -> int:
        return self.matrix.shape[1]

    def take(self, positions: np.ndarray) -> "FeatureMatrix":
        """Rows at the given positions, sharing the covariate map."""
        return FeatureMatrix(
            matrix=self.matrix[positions],
            row_ids=self.row_ids[positions],
            covariate_map=self.covariate_map,
        )


@dataclass
class TemporalFeatures:
    """Dense (rows, time, covariates) tensor row-aligned to a population."""
    tensor: np.ndarray
    row_ids: np.ndarray
    covariate_map: Dict[Any, int]
    time_ids: np.ndarray


def validate_plp_data(plp_data: PlpData, temporal: bool = False) -> PlpData:
    """
    Check that covariate data is in the expected long format.

    Raises:
        IncompatibleDataFormat: If plp_data is not a PlpData or lacks columns
    """
    if not isinstance(plp_data, PlpData):
        raise IncompatibleDataFormat(
            f"Expected PlpData, got {type(plp_data).__name__}"
        )
    if not isinstance(plp_data.covariates, pd.DataFrame):
        raise IncompatibleDataFormat("PlpData.covariates must be a pandas DataFrame")

    required = COVARIATE_COLUMNS + ([TIME_ID] if temporal else [])
    missing = [c for c in required if c not in plp_data.covariates.columns]
    if missing:
        raise IncompatibleDataFormat(f"Covariates are missing columns: {missing}")

    return plp_data


def build_covariate_map(
    covariates: pd.DataFrame,
    row_ids: Optional[np.ndarray] = None,
) -> Dict[Any, int]:
    """
    Map every covariateId seen in the given rows to a column index.

    Columns are assigned in ascending covariateId order.
    """
    if row_ids is not None:
        covariates = covariates[covariates[ROW_ID].isin(row_ids)]
    ids = np.sort(covariates[COVARIATE_ID].unique())
    return {cid: i for i, cid in enumerate(ids.tolist())}


def _restrict(
    plp_data: PlpData,
    population: pd.DataFrame,
    covariate_map: Optional[Dict[Any, int]],
):
    """Covariates of the population's rows, mapped to matrix coordinates."""
    row_ids = population[ROW_ID].to_numpy()
    covariates = plp_data.covariates
    covariates = covariates[covariates[ROW_ID].isin(row_ids)]

    if covariate_map is None:
        covariate_map = build_covariate_map(covariates)
    else:
        known = covariates[COVARIATE_ID].isin(list(covariate_map.keys()))
        n_dropped = int((~known).sum())
        if n_dropped:
            logger.debug(f"Dropping {n_dropped} covariate values not in the covariate map")
        covariates = covariates[known]

    row_index = pd.Series(np.arange(len(row_ids)), index=row_ids)
    rows = row_index.loc[covariates[ROW_ID].to_numpy()].to_numpy()
    cols = covariates[COVARIATE_ID].map(covariate_map).to_numpy(dtype=int)
    return covariates, row_ids, rows, cols, covariate_map


def to_sparse_matrix(
    plp_data: PlpData,
    population: pd.DataFrame,
    covariate_map: Optional[Dict[Any, int]] = None,
) -> FeatureMatrix:
    """
    Build a CSR feature matrix for the population.

    Args:
        plp_data: Covariate data
        population: Rows to build, in order
        covariate_map: Fixed map from training; None builds a new one

    Returns:
        FeatureMatrix with one row per population row
    """
    validate_plp_data(plp_data)
    covariates, row_ids, rows, cols, covariate_map = _restrict(
        plp_data, population, covariate_map
    )

    values = covariates[COVARIATE_VALUE].to_numpy(dtype=np.float64)
    matrix = sparse.csr_matrix(
        (values, (rows, cols)),
        shape=(len(row_ids), len(covariate_map)),
    )

    logger.info(
        f"Feature matrix: {matrix.shape[0]} rows x {matrix.shape[1]} covariates "
        f"({matrix.nnz} non-zero)"
    )
    return FeatureMatrix(matrix=matrix, row_ids=row_ids, covariate_map=covariate_map)


def to_temporal_tensor(
    plp_data: PlpData,
    population: pd.DataFrame,
    covariate_map: Optional[Dict[Any, int]] = None,
) -> TemporalFeatures:
    """
    Build a dense (rows, time, covariates) tensor for sequence models.

    Time steps are the sorted distinct timeIds of the population's covariates.
    """
    validate_plp_data(plp_data, temporal=True)
    covariates, row_ids, rows, cols, covariate_map = _restrict(
        plp_data, population, covariate_map
    )

    time_ids = np.sort(covariates[TIME_ID].unique())
    if len(time_ids) == 0:
        time_ids = np.array([0])
    time_index = pd.Series(np.arange(len(time_ids)), index=time_ids)
    steps = time_index.loc[covariates[TIME_ID].to_numpy()].to_numpy()

    tensor = np.zeros((len(row_ids), len(time_ids), len(covariate_map)), dtype=np.float32)
    np.add.at(tensor, (rows, steps, cols), covariates[COVARIATE_VALUE].to_numpy(dtype=np.float32))

    logger.info(
        f"Temporal tensor: {tensor.shape[0]} rows x {tensor.shape[1]} steps x "
        f"{tensor.shape[2]} covariates"
    )
    return TemporalFeatures(
        tensor=tensor,
        row_ids=row_ids,
        covariate_map=covariate_map,
        time_ids=time_ids,
    )
