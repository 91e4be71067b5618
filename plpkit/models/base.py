"""
Plugin contract.

Every model kind implements three operations:

    set(**hyperparameters) -> ModelSettings
        Validate candidate values and expand them into the search grid
    fit(population, plp_data, model_settings, ...) -> FitResult
        Search the grid with cross-validation, refit the best configuration
    predict(fit_result, population, plp_data) -> prediction table
        Score a (possibly different) population using the stored covariate map

NativePlugin implements fit/predict for trainers that run in-process;
a plugin only supplies set() and its BaseTrainer.
"""

import logging
import numbers
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Type

import numpy as np
import pandas as pd

from plpkit.callbacks.logging_callbacks import SearchTracker
from plpkit.config import get_config
from plpkit.data.covariates import (
    COVARIATE_ID,
    COVARIATE_NAME,
    COVARIATE_VALUE,
    PlpData,
    to_sparse_matrix,
    validate_plp_data,
)
from plpkit.data.population import (
    FOLD,
    OUTCOME,
    ROW_ID,
    SCORING_COLUMNS,
    ensure_fold_column,
    included_rows,
    labels,
    scoring_rows,
    validate_population,
)
from plpkit.evaluation.metrics import VALUE
from plpkit.exceptions import InvalidConfiguration
from plpkit.optimization.grid import HyperparameterSpace, as_candidates, build_grid
from plpkit.optimization.selector import ModelSelector
from plpkit.trainers.base_trainer import BaseTrainer
from plpkit.trainers.fold_evaluator import FoldEvaluator
from plpkit.types import FitResult, ModelSettings, TrainedArtifact

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Hyperparameter validation
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def check_numbers(
    name: str,
    values: Any,
    minimum: Optional[float] = None,
    exclusive_minimum: bool = False,
    maximum: Optional[float] = None,
    integer: bool = False,
) -> List[Any]:
    """
    Validate a candidate list of numeric values.

    Raises:
        InvalidConfiguration: On an empty list, a non-numeric value or a value
            out of range
    """
    candidates = as_candidates(values)
    if not candidates:
        raise InvalidConfiguration(f"{name} must have at least one candidate value")

    for value in candidates:
        if not _is_number(value) or (isinstance(value, float) and np.isnan(value)):
            raise InvalidConfiguration(f"{name} must be numeric, got {value!r}")
        if integer and int(value) != value:
            raise InvalidConfiguration(f"{name} must be an integer, got {value!r}")
        if minimum is not None:
            too_small = value <= minimum if exclusive_minimum else value < minimum
            if too_small:
                bound = ">" if exclusive_minimum else ">="
                raise InvalidConfiguration(f"{name} must be {bound} {minimum}, got {value!r}")
        if maximum is not None and value > maximum:
            raise InvalidConfiguration(f"{name} must be <= {maximum}, got {value!r}")

    return [int(v) for v in candidates] if integer else candidates


def check_choices(name: str, values: Any, choices: Iterable[Any]) -> List[Any]:
    """Validate a candidate list drawn from a fixed set of choices."""
    choices = tuple(choices)
    candidates = as_candidates(values)
    if not candidates:
        raise InvalidConfiguration(f"{name} must have at least one candidate value")
    for value in candidates:
        if value not in choices:
            raise InvalidConfiguration(f"{name} must be one of {choices}, got {value!r}")
    return candidates


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def prediction_table(population: pd.DataFrame, values: np.ndarray) -> pd.DataFrame:
    """rowId + value, with outcomeCount and indexes carried over when present."""
    table = pd.DataFrame({ROW_ID: population[ROW_ID].to_numpy()})
    for column in (OUTCOME, FOLD):
        if column in population.columns:
            table[column] = population[column].to_numpy()
    table[VALUE] = np.asarray(values, dtype=float)
    return table


def importance_frame(
    importance: Dict[Any, float],
    covariate_ref: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """Variable importance as covariateId, covariateValue, included (+ covariateName)."""
    frame = pd.DataFrame({
        COVARIATE_ID: list(importance.keys()),
        COVARIATE_VALUE: list(importance.values()),
    })
    frame["included"] = 1
    if covariate_ref is not None and COVARIATE_NAME in covariate_ref.columns:
        frame = frame.merge(
            covariate_ref[[COVARIATE_ID, COVARIATE_NAME]].drop_duplicates(COVARIATE_ID),
            on=COVARIATE_ID,
            how="left",
        )
    return frame


def fit_metadata(plp_data: PlpData, population: pd.DataFrame) -> Dict[str, Any]:
    metadata = dict(plp_data.metadata or {})
    metadata["populationSize"] = int(len(population))
    metadata["outcomeCount"] = int(labels(population).sum())
    return metadata


# ---------------------------------------------------------------------------
# Plugin base classes
# ---------------------------------------------------------------------------

class ModelPlugin(ABC):
    """
    Abstract base class for model plugins.

    Class attributes:
        type_tag: Stamped on artifacts; selects the predictor at dispatch
        trainer_id: Named by ModelSettings; selects fit() at dispatch
        name: Display name
    """

    type_tag: str = ""
    trainer_id: str = ""
    name: str = ""

    @abstractmethod
    def set(self, **hyperparameters) -> ModelSettings:
        pass

    @abstractmethod
    def fit(
        self,
        population: pd.DataFrame,
        plp_data: PlpData,
        model_settings: ModelSettings,
        outcome_id: Any = None,
        cohort_id: Any = None,
        artifact_root: Optional[Path] = None,
    ) -> FitResult:
        pass

    @abstractmethod
    def predict(
        self,
        fit_result: FitResult,
        population: pd.DataFrame,
        plp_data: PlpData,
    ) -> pd.DataFrame:
        pass

    def _model_settings(self, space: HyperparameterSpace) -> ModelSettings:
        """Expand a validated space into ModelSettings for this plugin."""
        return ModelSettings(
            trainer_id=self.trainer_id,
            configurations=build_grid(space),
            name=self.name,
        )

    def _check_settings(self, model_settings: ModelSettings):
        if model_settings.trainer_id != self.trainer_id:
            raise InvalidConfiguration(
                f"{type(self).__name__} cannot fit settings for '{model_settings.trainer_id}'"
            )
        if len(model_settings) == 0:
            raise InvalidConfiguration("Model settings contain no configurations")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type_tag='{self.type_tag}', trainer_id='{self.trainer_id}')"


class NativePlugin(ModelPlugin):
    """Plugin whose trainer runs in this process on a sparse feature matrix."""

    trainer_class: Type[BaseTrainer]

    def create_trainer(self) -> BaseTrainer:
        return self.trainer_class()

    def fit(
        self,
        population: pd.DataFrame,
        plp_data: PlpData,
        model_settings: ModelSettings,
        outcome_id: Any = None,
        cohort_id: Any = None,
        artifact_root: Optional[Path] = None,
    ) -> FitResult:
        """
        Grid search with pooled cross-validated AUC, then refit on all included rows.

        artifact_root is accepted for a uniform signature; native artifacts
        stay in memory until persisted with save_fit_result().
        """
        start = time.time()
        self._check_settings(model_settings)
        validate_population(population)
        validate_plp_data(plp_data)

        population = included_rows(ensure_fold_column(population))
        features = to_sparse_matrix(plp_data, population)

        trainer = self.create_trainer()
        evaluator = FoldEvaluator(trainer)
        selector = ModelSelector(
            lambda configuration: evaluator.evaluate(configuration, population, features),
            tracker=SearchTracker(
                model_name=self.name,
                output_dir=get_config().search_log_dir,
            ),
            show_progress=get_config().show_progress,
        )
        selection, final = selector.run(model_settings.configurations)

        importance = trainer.variable_importance(final.model, features.covariate_map)
        duration = time.time() - start
        logger.info(f"{self.name} fitted in {duration:.1f}s")

        return FitResult(
            artifact=TrainedArtifact(type_tag=self.type_tag, model=final.model),
            chosen_configuration=selection.best_configuration,
            search_summary=tuple(selection.search_summary),
            var_importance=importance_frame(importance, plp_data.covariate_ref),
            training_duration=duration,
            covariate_map=dict(features.covariate_map),
            model_settings=model_settings,
            outcome_id=outcome_id,
            cohort_id=cohort_id,
            metadata=fit_metadata(plp_data, population),
        )

    def predict(
        self,
        fit_result: FitResult,
        population: pd.DataFrame,
        plp_data: PlpData,
    ) -> pd.DataFrame:
        """
        Score the included rows of population using the stored covariate map.

        Only rowId is required; outcomeCount and indexes are carried into the
        output when the input has them.
        """
        validate_population(population, required=SCORING_COLUMNS)
        validate_plp_data(plp_data)

        population = scoring_rows(population)
        features = to_sparse_matrix(plp_data, population, covariate_map=fit_result.covariate_map)
        values = self.create_trainer().predict_proba(fit_result.artifact.model, features)
        return prediction_table(population, values)
