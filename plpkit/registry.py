"""
Model registry and prediction dispatch.

Plugins register themselves when their module is imported. The registry
maps each plugin's type_tag (stamped on every artifact it produces) and
trainer_id (named by the ModelSettings its set() returns) to the plugin.
Dispatch is a single lookup; an unknown key raises MissingImplementation.

Example:
    >>> settings = LogisticRegressionPlugin().set(C=[0.1, 1.0])
    >>> result = fit_plp(population, plp_data, settings)
    >>> prediction = predict_plp(result, new_population, new_plp_data)
"""

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import pandas as pd

from plpkit.exceptions import MissingImplementation
from plpkit.types import FitResult, ModelSettings

if TYPE_CHECKING:
    from plpkit.data.covariates import PlpData
    from plpkit.models.base import ModelPlugin

logger = logging.getLogger(__name__)

Predictor = Callable[..., pd.DataFrame]


class ModelRegistry:
    """Mapping of type tag and trainer id to plugin."""

    def __init__(self):
        self._by_tag: Dict[str, "ModelPlugin"] = {}
        self._by_trainer: Dict[str, "ModelPlugin"] = {}
        self._lock = threading.Lock()

    def register(self, plugin: "ModelPlugin", replace: bool = False) -> "ModelPlugin":
        """
        Register a plugin under its type_tag and trainer_id.

        Raises:
            ValueError: If the tag or trainer id is taken by another plugin
                and replace is False
        """
        if not plugin.type_tag or not plugin.trainer_id:
            raise ValueError(f"{type(plugin).__name__} must define type_tag and trainer_id")

        with self._lock:
            for key, table in ((plugin.type_tag, self._by_tag), (plugin.trainer_id, self._by_trainer)):
                existing = table.get(key)
                if existing is not None and not replace and type(existing) is not type(plugin):
                    raise ValueError(
                        f"'{key}' is already registered to {type(existing).__name__}"
                    )
            self._by_tag[plugin.type_tag] = plugin
            self._by_trainer[plugin.trainer_id] = plugin

        logger.debug(f"Registered {type(plugin).__name__} as '{plugin.type_tag}'")
        return plugin

    def unregister(self, type_tag: str):
        with self._lock:
            plugin = self._by_tag.pop(type_tag, None)
            if plugin is not None:
                self._by_trainer.pop(plugin.trainer_id, None)

    def get_plugin(self, type_tag: str) -> "ModelPlugin":
        try:
            return self._by_tag[type_tag]
        except KeyError:
            raise MissingImplementation(type_tag)

    def get_predictor(self, type_tag: str) -> Predictor:
        return self.get_plugin(type_tag).predict

    def get_trainer(self, trainer_id: str) -> "ModelPlugin":
        try:
            return self._by_trainer[trainer_id]
        except KeyError:
            raise MissingImplementation(trainer_id, kind="trainer id")

    def type_tags(self) -> List[str]:
        return sorted(self._by_tag)

    def __contains__(self, type_tag: str) -> bool:
        return type_tag in self._by_tag

    def __len__(self) -> int:
        return len(self._by_tag)


default_registry = ModelRegistry()


def fit_plp(
    population: pd.DataFrame,
    plp_data: "PlpData",
    model_settings: ModelSettings,
    outcome_id: Any = None,
    cohort_id: Any = None,
    registry: Optional[ModelRegistry] = None,
    **kwargs,
) -> FitResult:
    """Run the fit of the plugin named by model_settings.trainer_id."""
    if registry is None:
        registry = default_registry
    plugin = registry.get_trainer(model_settings.trainer_id)
    logger.info(f"Fitting {model_settings.name} ({len(model_settings)} configurations)")
    return plugin.fit(
        population,
        plp_data,
        model_settings,
        outcome_id=outcome_id,
        cohort_id=cohort_id,
        **kwargs,
    )


def predict_plp(
    fit_result: FitResult,
    population: pd.DataFrame,
    plp_data: "PlpData",
    registry: Optional[ModelRegistry] = None,
    **kwargs,
) -> pd.DataFrame:
    """
    Score a population with the predictor registered for fit_result.type_tag.

    Raises:
        MissingImplementation: If no plugin is registered for the tag
    """
    if registry is None:
        registry = default_registry
    predictor = registry.get_predictor(fit_result.type_tag)
    return predictor(fit_result, population, plp_data, **kwargs)
