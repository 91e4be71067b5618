"""Discrimination metrics for binary patient-level prediction.

AUC is the selection metric for every plugin. It is always computed once
over a complete set of predictions; fold-level AUCs are never averaged.
"""

import numpy as np
import pandas as pd
from sklearn.metrics import roc_auc_score

from plpkit.data.population import OUTCOME
from plpkit.exceptions import IncompatibleDataFormat

VALUE = "value"


def compute_roc_auc(
    y_true: np.ndarray,
    y_score: np.ndarray,
) -> float:
    """Compute the area under the ROC curve.

    Parameters
    ----------
    y_true : np.ndarray
        True binary labels (0 or 1). Shape: (n_samples,)
    y_score : np.ndarray
        Predicted risk. Higher values indicate higher likelihood of the
        outcome. Shape: (n_samples,)

    Returns
    -------
    float
        AUC in [0, 1]; 0.5 when only one class is present.

    Raises
    ------
    ValueError
        If inputs are empty, have mismatched lengths or contain NaN scores.

    Examples
    --------
    >>> compute_roc_auc(np.array([0, 0, 1, 1]), np.array([0.1, 0.4, 0.6, 0.9]))
    1.0
    """
    y_true = np.asarray(y_true)
    y_score = np.asarray(y_score, dtype=float)

    if len(y_true) == 0 or len(y_score) == 0:
        raise ValueError("Input arrays cannot be empty.")

    if len(y_true) != len(y_score):
        raise ValueError(
            f"Input arrays must have the same length. "
            f"Got y_true: {len(y_true)}, y_score: {len(y_score)}."
        )

    if np.isnan(y_score).any():
        raise ValueError("Predicted scores contain NaN.")

    # Cannot compute meaningful ROC when only one class is present
    if len(np.unique(y_true)) < 2:
        return 0.5

    return float(roc_auc_score(y_true, y_score))


def compute_auc(prediction: pd.DataFrame) -> float:
    """AUC of a prediction table with outcomeCount and value columns."""
    missing = [c for c in (OUTCOME, VALUE) if c not in prediction.columns]
    if missing:
        raise IncompatibleDataFormat(f"Prediction table is missing columns: {missing}")

    y_true = (prediction[OUTCOME].to_numpy() > 0).astype(int)
    return compute_roc_auc(y_true, prediction[VALUE].to_numpy())
