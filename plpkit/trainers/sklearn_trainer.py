"""
L1/L2-regularised logistic regression trainer.

Design Decisions:

1. liblinear solver:
   - Supports both l1 and l2 penalties
   - Works directly on the sparse CSR matrix (no densification)

2. Variable importance:
   - The fitted coefficient of each covariate
"""

import logging
import re
from typing import Any, Dict

import numpy as np
import sklearn
from sklearn.linear_model import LogisticRegression

from plpkit.data.covariates import FeatureMatrix
from plpkit.trainers.base_trainer import BaseTrainer
from plpkit.types import HyperparameterConfiguration

logger = logging.getLogger(__name__)

# scikit-learn 1.8 deprecates `penalty` in favour of l1_ratio (1 = l1, 0 = l2)
USE_L1_RATIO = tuple(
    int(part) for part in re.match(r"(\d+)\.(\d+)", sklearn.__version__).groups()
) >= (1, 8)


def penalty_arguments(penalty: str) -> Dict[str, Any]:
    """LogisticRegression keyword arguments selecting an l1 or l2 penalty."""
    if USE_L1_RATIO:
        return {"l1_ratio": 1.0 if penalty == "l1" else 0.0}
    return {"penalty": penalty}


class LogisticRegressionTrainer(BaseTrainer):
    """Trains sklearn LogisticRegression for one configuration (C, penalty, seed)."""

    def train(
        self,
        features: FeatureMatrix,
        labels: np.ndarray,
        configuration: HyperparameterConfiguration,
    ) -> LogisticRegression:
        model = LogisticRegression(
            C=float(configuration.get("C", 1.0)),
            solver="liblinear",
            random_state=configuration.get("seed"),
            max_iter=int(configuration.get("max_iter", 1000)),
            **penalty_arguments(configuration.get("penalty", "l1")),
        )
        model.fit(features.matrix, labels)
        logger.debug(f"Fitted logistic regression on {features.n_rows} rows")
        return model

    def predict_proba(self, model: LogisticRegression, features: FeatureMatrix) -> np.ndarray:
        return model.predict_proba(features.matrix)[:, 1]

    def variable_importance(self, model: Any, covariate_map: Dict[Any, int]) -> Dict[Any, float]:
        coefficients = model.coef_[0]
        return {cid: float(coefficients[col]) for cid, col in covariate_map.items()}
