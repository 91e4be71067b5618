"""
Recurrent neural network plugin, trained in an external interpreter.

The search and the final refit run the shipped torch routines
(plpkit/external/routines) inside an ExternalSession. Each configuration is
scored by the routine's out-of-fold predictions; the winner is refit with
train=False and written to <artifact_root>/python_models.

Design Decisions:

1. One session per fit:
   - The session is acquired for the whole fit so data pushed once serves
     every configuration and nothing else can touch its namespace
   - A caller may pass its own session to reuse one interpreter

2. Shared artifact directory:
   - Every fit under the same artifact_root writes into the same
     python_models directory, which is cleared before each final run.
     Persist a FitResult with save_fit_result() to keep its artifact.

3. Variable importance:
   - Not computed; every covariate is reported with value 0 and included=1
"""

import logging
import time
from pathlib import Path
from typing import Any, Optional, Sequence

import pandas as pd

from plpkit.callbacks.logging_callbacks import SearchTracker
from plpkit.config import get_config
from plpkit.data.covariates import PlpData, to_temporal_tensor, validate_plp_data
from plpkit.data.population import (
    SCORING_COLUMNS,
    ensure_fold_column,
    included_rows,
    scoring_rows,
    validate_population,
)
from plpkit.exceptions import IncompatibleDataFormat, InvalidConfiguration
from plpkit.external.adapter import MODEL_TYPES, ExternalTrainerAdapter
from plpkit.external.session import ExternalSession
from plpkit.models.base import (
    ModelPlugin,
    check_choices,
    check_numbers,
    fit_metadata,
    importance_frame,
)
from plpkit.optimization.selector import ModelSelector
from plpkit.registry import default_registry
from plpkit.types import FitResult, ModelSettings, TrainedArtifact

logger = logging.getLogger(__name__)

ARTIFACT_DIR_NAME = "python_models"


def _check_seed(seed: Any):
    if seed is None:
        return
    if isinstance(seed, bool) or not isinstance(seed, int) or seed < 0:
        raise InvalidConfiguration(f"seed must be a non-negative integer or None, got {seed!r}")


def _check_class_weight(class_weight: Any):
    if isinstance(class_weight, bool) or not isinstance(class_weight, (int, float)):
        raise InvalidConfiguration(f"class_weight must be numeric, got {class_weight!r}")
    if class_weight not in (-1, 0) and class_weight <= 0:
        raise InvalidConfiguration(
            f"class_weight must be -1 (focal loss), 0 (inverse ratio) or > 0, got {class_weight!r}"
        )


class RNNTorchPlugin(ModelPlugin):
    """RNN / BiRNN / GRU on the temporal covariate tensor."""

    type_tag = "python"
    trainer_id = "fitRNNTorch"
    name = "RNN Torch"

    def set(
        self,
        hidden_size: Sequence[int] = (50, 100),
        epochs: Sequence[int] = (20, 50),
        seed: Optional[int] = 0,
        class_weight: float = 0,
        type: str = "RNN",
    ) -> ModelSettings:
        """
        Build the search grid over hidden_size x epochs.

        Args:
            hidden_size: Recurrent hidden sizes to try (positive integers)
            epochs: Epoch counts to try (positive integers)
            seed: Seed for the routine, or None for unseeded runs
            class_weight: -1 focal loss, 0 inverse class ratio, > 0 outcome weight
            type: RNN, BiRNN or GRU

        Raises:
            InvalidConfiguration: On any invalid value
        """
        _check_seed(seed)
        _check_class_weight(class_weight)
        model_type = check_choices("type", type, MODEL_TYPES)
        if len(model_type) != 1:
            raise InvalidConfiguration("type must be a single model type")

        space = {
            "hidden_size": check_numbers("hidden_size", hidden_size, minimum=1, integer=True),
            "epochs": check_numbers("epochs", epochs, minimum=1, integer=True),
            "seed": [seed],
            "class_weight": [class_weight],
            "type": model_type,
        }
        return self._model_settings(space)

    def artifact_dir(self, artifact_root: Optional[Path] = None) -> Path:
        root = Path(artifact_root) if artifact_root is not None else get_config().artifact_root
        return root / ARTIFACT_DIR_NAME

    def fit(
        self,
        population: pd.DataFrame,
        plp_data: PlpData,
        model_settings: ModelSettings,
        outcome_id: Any = None,
        cohort_id: Any = None,
        artifact_root: Optional[Path] = None,
        session: Optional[ExternalSession] = None,
    ) -> FitResult:
        """
        Search the grid in the external session and refit the winner.

        Args:
            population: Population with rowId, outcomeCount and (ideally) indexes
            plp_data: Covariates with a timeId column
            model_settings: Output of set()
            outcome_id: Carried into the result
            cohort_id: Carried into the result
            artifact_root: Root for the python_models directory
                (default: config.artifact_root)
            session: Session to reuse (default: a new one for this fit)

        Returns:
            FitResult whose artifact path is the python_models directory
        """
        start = time.time()
        self._check_settings(model_settings)
        validate_population(population)
        validate_plp_data(plp_data, temporal=True)

        population = included_rows(ensure_fold_column(population))
        features = to_temporal_tensor(plp_data, population)
        if features.tensor.shape[2] == 0:
            raise IncompatibleDataFormat("No covariates found for the population")

        session = session or ExternalSession()
        with session.acquire():
            adapter = ExternalTrainerAdapter(session, self.artifact_dir(artifact_root))
            adapter.push_data(population, features)

            selector = ModelSelector(
                adapter.evaluate,
                tracker=SearchTracker(
                    model_name=self.name,
                    output_dir=get_config().search_log_dir,
                ),
                show_progress=get_config().show_progress,
            )
            selection, final = selector.run(model_settings.configurations)

        duration = time.time() - start
        logger.info(f"{self.name} fitted in {duration:.1f}s")

        importance = {cid: 0.0 for cid in features.covariate_map}
        return FitResult(
            artifact=TrainedArtifact(type_tag=self.type_tag, path=Path(final.model)),
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
        session: Optional[ExternalSession] = None,
    ) -> pd.DataFrame:
        """Score the included rows of population with the persisted network."""
        if not fit_result.artifact.is_persisted:
            raise IncompatibleDataFormat("RNN Torch fit result has no artifact directory")

        validate_population(population, required=SCORING_COLUMNS)
        validate_plp_data(plp_data, temporal=True)

        population = scoring_rows(population)
        features = to_temporal_tensor(
            plp_data, population, covariate_map=fit_result.covariate_map
        )

        session = session or ExternalSession()
        with session.acquire():
            adapter = ExternalTrainerAdapter(session, fit_result.artifact.path)
            return adapter.predict(fit_result.artifact.path, population, features)


default_registry.register(RNNTorchPlugin())
