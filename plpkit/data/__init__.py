"""Population and covariate data utilities."""

from plpkit.data.population import (
    FOLD,
    OUTCOME,
    ROW_ID,
    SUBJECT_ID,
    ensure_fold_column,
    fold_ids,
    included_rows,
    labels,
    scoring_rows,
    validate_population,
)
from plpkit.data.covariates import (
    FeatureMatrix,
    PlpData,
    TemporalFeatures,
    build_covariate_map,
    to_sparse_matrix,
    to_temporal_tensor,
    validate_plp_data,
)
from plpkit.data.cross_validation import assign_folds

__all__ = [
    "FOLD",
    "OUTCOME",
    "ROW_ID",
    "SUBJECT_ID",
    "ensure_fold_column",
    "fold_ids",
    "included_rows",
    "labels",
    "scoring_rows",
    "validate_population",
    "FeatureMatrix",
    "PlpData",
    "TemporalFeatures",
    "build_covariate_map",
    "to_sparse_matrix",
    "to_temporal_tensor",
    "validate_plp_data",
    "assign_folds",
]
