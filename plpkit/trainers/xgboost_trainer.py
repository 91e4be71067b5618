"""
Gradient boosting trainer (XGBoost).

Design Decisions:

1. sklearn wrapper (XGBClassifier):
   - Accepts the sparse CSR matrix directly
   - Same fit/predict_proba shape as the other in-process trainers

2. Class imbalance:
   - scale_pos_weight computed from the training rows of each fit
     (negatives / positives), as outcomes are rare in most cohorts

3. Variable importance:
   - XGBoost gain-based feature_importances_
"""

import logging
from typing import Any, Dict

import numpy as np
import xgboost as xgb

from plpkit.data.covariates import FeatureMatrix
from plpkit.trainers.base_trainer import BaseTrainer
from plpkit.types import HyperparameterConfiguration

logger = logging.getLogger(__name__)


class XGBoostTrainer(BaseTrainer):
    """
    XGBoost trainer for one configuration.

    Configuration keys: n_estimators, max_depth, learning_rate, seed
    """

    def train(
        self,
        features: FeatureMatrix,
        labels: np.ndarray,
        configuration: HyperparameterConfiguration,
    ) -> xgb.XGBClassifier:
        n_pos = labels.sum()
        n_neg = len(labels) - n_pos
        scale_pos_weight = n_neg / n_pos if n_pos > 0 else 1.0

        model = xgb.XGBClassifier(
            n_estimators=int(configuration.get("n_estimators", 100)),
            max_depth=int(configuration.get("max_depth", 4)),
            learning_rate=float(configuration.get("learning_rate", 0.1)),
            random_state=configuration.get("seed", 42),
            scale_pos_weight=scale_pos_weight,
            importance_type="gain",
            eval_metric="auc",
            tree_method="hist",
            n_jobs=1,
        )
        model.fit(features.matrix, labels)
        logger.debug(
            f"Fitted XGBoost on {features.n_rows} rows "
            f"(scale_pos_weight={scale_pos_weight:.2f})"
        )
        return model

    def predict_proba(self, model: xgb.XGBClassifier, features: FeatureMatrix) -> np.ndarray:
        return model.predict_proba(features.matrix)[:, 1]

    def variable_importance(self, model: Any, covariate_map: Dict[Any, int]) -> Dict[Any, float]:
        importances = model.feature_importances_
        return {cid: float(importances[col]) for cid, col in covariate_map.items()}
