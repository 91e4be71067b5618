"""
Lasso logistic regression plugin (scikit-learn).

Hyperparameters:
    C: Inverse regularisation strength, one or more values > 0
    penalty: "l1" (lasso) or "l2"
    seed: Random state passed to liblinear
"""

import logging
from typing import Any, Sequence

from plpkit.exceptions import InvalidConfiguration
from plpkit.models.base import NativePlugin, check_choices, check_numbers
from plpkit.registry import default_registry
from plpkit.trainers.sklearn_trainer import LogisticRegressionTrainer
from plpkit.types import ModelSettings

logger = logging.getLogger(__name__)

PENALTIES = ("l1", "l2")


class LogisticRegressionPlugin(NativePlugin):
    """Regularised logistic regression on the sparse covariate matrix."""

    type_tag = "sklearn"
    trainer_id = "fitLassoLogisticRegression"
    name = "Lasso Logistic Regression"
    trainer_class = LogisticRegressionTrainer

    def set(
        self,
        C: Sequence[float] = (0.1, 1.0),
        penalty: Sequence[str] = ("l1",),
        seed: Any = 42,
    ) -> ModelSettings:
        """
        Build the search grid.

        Raises:
            InvalidConfiguration: If C is not positive, penalty is unknown
                or seed is not an integer
        """
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise InvalidConfiguration(f"seed must be an integer, got {seed!r}")

        space = {
            "C": check_numbers("C", C, minimum=0, exclusive_minimum=True),
            "penalty": check_choices("penalty", penalty, PENALTIES),
            "seed": [seed],
        }
        return self._model_settings(space)


default_registry.register(LogisticRegressionPlugin())
