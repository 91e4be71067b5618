"""
Base trainer interface.

Design Decisions:

1. Abstract Interface:
   - A trainer only knows how to fit one configuration on a feature matrix
     and score rows with the result
   - Fold handling, search and refit live in FoldEvaluator / ModelSelector,
     so every plugin shares them

2. Probabilities, not labels:
   - predict_proba returns the risk of the outcome, higher = more likely
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

import numpy as np

from plpkit.data.covariates import FeatureMatrix
from plpkit.types import HyperparameterConfiguration

logger = logging.getLogger(__name__)


class BaseTrainer(ABC):
    """
    Abstract base class for in-process trainers.

    Subclasses must implement:
    - train(): Fit a model for one configuration
    - predict_proba(): Outcome risk for each row

    Subclasses may override:
    - variable_importance(): Per-covariate score of a fitted model
    """

    @abstractmethod
    def train(
        self,
        features: FeatureMatrix,
        labels: np.ndarray,
        configuration: HyperparameterConfiguration,
    ) -> Any:
        """
        Fit a model.

        Args:
            features: Training rows
            labels: Binary outcome per row
            configuration: Hyperparameter values

        Returns:
            Fitted model object
        """
        pass

    @abstractmethod
    def predict_proba(self, model: Any, features: FeatureMatrix) -> np.ndarray:
        """
        Outcome risk for each row of features.

        Args:
            model: Model returned by train()
            features: Rows to score

        Returns:
            Array of shape (n_rows,) with values in [0, 1]
        """
        pass

    def variable_importance(self, model: Any, covariate_map: Dict[Any, int]) -> Dict[Any, float]:
        """Per-covariate importance; zero for every covariate unless overridden."""
        return {cid: 0.0 for cid in covariate_map}
