"""Gradient boosting machine plugin (XGBoost)."""

import logging
from typing import Any, Sequence

from plpkit.exceptions import InvalidConfiguration
from plpkit.models.base import NativePlugin, check_numbers
from plpkit.registry import default_registry
from plpkit.trainers.xgboost_trainer import XGBoostTrainer
from plpkit.types import ModelSettings

logger = logging.getLogger(__name__)


class GradientBoostingPlugin(NativePlugin):
    """XGBoost trees on the sparse covariate matrix."""

    type_tag = "xgboost"
    trainer_id = "fitGradientBoostingMachine"
    name = "Gradient Boosting Machine"
    trainer_class = XGBoostTrainer

    def set(
        self,
        n_estimators: Sequence[int] = (100,),
        max_depth: Sequence[int] = (4,),
        learning_rate: Sequence[float] = (0.1,),
        seed: Any = 42,
    ) -> ModelSettings:
        """
        Build the search grid.

        Args:
            n_estimators: Number of boosting rounds (positive integers)
            max_depth: Maximum tree depth (positive integers)
            learning_rate: Shrinkage, each in (0, 1]
            seed: Random state

        Raises:
            InvalidConfiguration: On out-of-range values
        """
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise InvalidConfiguration(f"seed must be an integer, got {seed!r}")

        space = {
            "n_estimators": check_numbers("n_estimators", n_estimators, minimum=1, integer=True),
            "max_depth": check_numbers("max_depth", max_depth, minimum=1, integer=True),
            "learning_rate": check_numbers(
                "learning_rate", learning_rate, minimum=0, exclusive_minimum=True, maximum=1
            ),
            "seed": [seed],
        }
        return self._model_settings(space)


default_registry.register(GradientBoostingPlugin())
