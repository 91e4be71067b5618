"""
Adapter between the hyperparameter search and an external training routine.

Protocol for one training request (all over a single ExternalSession):

1. push_data(): included rows as (rowIdZeroBased, outcomeCount, indexes)
   plus the (rows, time, covariates) feature tensor
2. train(): set epochs, hidden_size, seed, class_weight, model_type, train
   and model_output, then execute the routine
3. Evaluation mode (train=True): fetch `prediction` (n x 4), map row
   positions back to rowIds and invert the value (1 - v). The routine
   reports the probability of NO outcome. Then compute AUC.
4. Final mode (train=False): clear the artifact directory, run the routine,
   return the directory holding the freshly written artifact.

The clear-then-write step is serialized per directory so one run's cleanup
cannot delete another run's artifact.
"""

import logging
import shutil
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from plpkit.data.covariates import TemporalFeatures
from plpkit.data.population import FOLD, OUTCOME, ROW_ID, ensure_fold_column
from plpkit.evaluation.metrics import VALUE, compute_auc
from plpkit.exceptions import ExternalSessionFailure, IncompatibleDataFormat
from plpkit.external.session import ExternalSession
from plpkit.types import EvaluationResult, HyperparameterConfiguration

logger = logging.getLogger(__name__)

ROUTINES_DIR = Path(__file__).resolve().parent / "routines"
DEFAULT_TRAIN_ROUTINE = ROUTINES_DIR / "deep_torch.py"
DEFAULT_PREDICT_ROUTINE = ROUTINES_DIR / "predict_torch.py"

MODEL_TYPES = ("RNN", "BiRNN", "GRU")

_dir_locks: Dict[Path, threading.Lock] = {}
_dir_locks_guard = threading.Lock()


def artifact_dir_lock(path: Path) -> threading.Lock:
    """Process-wide lock for one artifact directory."""
    key = Path(path).resolve()
    with _dir_locks_guard:
        if key not in _dir_locks:
            _dir_locks[key] = threading.Lock()
        return _dir_locks[key]


def invert_polarity(values: np.ndarray) -> np.ndarray:
    """The external routines report P(no outcome); downstream expects risk."""
    return 1.0 - np.asarray(values, dtype=float)


class ExternalTrainerAdapter:
    """
    Drive an external training routine for one fit.

    Example:
        >>> with session.acquire():
        ...     adapter = ExternalTrainerAdapter(session, artifact_dir)
        ...     adapter.push_data(population, features)
        ...     result = adapter.evaluate(configuration)
    """

    def __init__(
        self,
        session: ExternalSession,
        artifact_dir: Union[str, Path],
        train_routine: Union[str, Path] = DEFAULT_TRAIN_ROUTINE,
        predict_routine: Union[str, Path] = DEFAULT_PREDICT_ROUTINE,
    ):
        """
        Args:
            session: Running (or acquirable) external session
            artifact_dir: Directory that final-mode runs write into
            train_routine: Routine executed by train()
            predict_routine: Routine executed by predict()
        """
        self.session = session
        self.artifact_dir = Path(artifact_dir)
        self.train_routine = Path(train_routine)
        self.predict_routine = Path(predict_routine)
        self._rows: Optional[pd.DataFrame] = None

    def push_data(self, population: pd.DataFrame, features: TemporalFeatures):
        """
        Send the included rows and their features to the session.

        Args:
            population: Population row-aligned to features
            features: Temporal features built for the same rows
        """
        if features.tensor.shape[0] != len(population):
            raise IncompatibleDataFormat(
                f"Feature tensor has {features.tensor.shape[0]} rows but population has "
                f"{len(population)}"
            )

        population = ensure_fold_column(population)
        positions = np.flatnonzero(population[FOLD].to_numpy() > 0)
        rows = population.iloc[positions][[ROW_ID, OUTCOME, FOLD]].reset_index(drop=True)

        matrix = np.column_stack([
            np.arange(len(rows), dtype=np.float64),
            rows[OUTCOME].to_numpy(dtype=np.float64),
            rows[FOLD].to_numpy(dtype=np.float64),
        ])

        self.session.push_array("population", matrix)
        self.session.push_array("covariates", features.tensor[positions].astype(np.float32))
        self._rows = rows

        logger.info(f"Pushed {len(rows)} rows to external session")

    def _set_hyperparameters(self, configuration: HyperparameterConfiguration, train: bool):
        model_type = configuration.get("type", configuration.get("model_type", "RNN"))
        if model_type not in MODEL_TYPES:
            raise IncompatibleDataFormat(f"Unknown model type {model_type!r}")

        seed = configuration.get("seed")
        self.session.set_values(
            epochs=int(configuration["epochs"]),
            hidden_size=int(configuration["hidden_size"]),
            seed=None if seed is None else int(seed),
            class_weight=float(configuration.get("class_weight", 0)),
            model_type=model_type,
            train=bool(train),
        )

    def clear_artifact_dir(self) -> List[Path]:
        """Delete everything in the artifact directory; returns what was removed."""
        self.artifact_dir.mkdir(parents=True, exist_ok=True)
        removed = []
        for entry in self.artifact_dir.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed.append(entry)
        if removed:
            logger.info(f"Cleared {len(removed)} entries from {self.artifact_dir}")
        return removed

    def train(
        self,
        configuration: HyperparameterConfiguration,
        train_flag: Optional[bool] = None,
    ) -> Union[float, Path]:
        """
        Run the training routine once.

        Args:
            configuration: Hyperparameters
            train_flag: True = evaluation mode, False = final mode;
                defaults to not configuration.is_final

        Returns:
            AUC in evaluation mode, the artifact directory in final mode
        """
        if train_flag is None:
            train_flag = not configuration.is_final

        if train_flag:
            return self._run_evaluation(configuration)[0]
        return self._run_final(configuration)

    def evaluate(self, configuration: HyperparameterConfiguration) -> EvaluationResult:
        """ModelSelector entry point."""
        summary = configuration.to_dict()

        if configuration.is_final:
            path = self._run_final(configuration)
            summary["performance"] = float("nan")
            return EvaluationResult(
                performance=float("nan"),
                model=path,
                hyperparameter_summary=summary,
            )

        performance, prediction = self._run_evaluation(configuration)
        summary["performance"] = performance
        return EvaluationResult(
            performance=performance,
            model=None,
            hyperparameter_summary=summary,
            predictions=prediction,
        )

    def _run_evaluation(self, configuration: HyperparameterConfiguration):
        self._require_data()
        self._set_hyperparameters(configuration, train=True)
        self.session.execute(self.train_routine)
        prediction = self.to_prediction_table(self.session.fetch_array("prediction"))
        auc = compute_auc(prediction)
        logger.info(f"Model obtained CV AUC of {auc:.4f}")
        return auc, prediction

    def _run_final(self, configuration: HyperparameterConfiguration) -> Path:
        self._require_data()
        with artifact_dir_lock(self.artifact_dir):
            self._set_hyperparameters(configuration, train=False)
            self.clear_artifact_dir()
            self.session.set_values(model_output=str(self.artifact_dir.resolve()))
            self.session.execute(self.train_routine)
        logger.info(f"Final model written to {self.artifact_dir}")
        return self.artifact_dir

    def predict(
        self,
        model_dir: Union[str, Path],
        population: pd.DataFrame,
        features: TemporalFeatures,
    ) -> pd.DataFrame:
        """
        Score the included rows of a population with a persisted artifact.

        The artifact directory is read under its lock, so a concurrent final
        run into the same directory cannot clear it mid-read.

        Returns:
            Table with rowId, value (risk), plus outcomeCount and indexes
            when the input population has them
        """
        pushed = population.copy()
        if OUTCOME not in pushed.columns:
            pushed[OUTCOME] = 0
        if FOLD not in pushed.columns:
            pushed[FOLD] = 1
        self.push_data(pushed, features)

        model_dir = Path(model_dir)
        with artifact_dir_lock(model_dir):
            self.session.set_values(model_dir=str(model_dir.resolve()))
            self.session.execute(self.predict_routine)
            scored = self.to_prediction_table(self.session.fetch_array("prediction"))

        columns = [c for c in (ROW_ID, OUTCOME, FOLD) if c in population.columns]
        table = population.loc[population[ROW_ID].isin(scored[ROW_ID]), columns]
        table = table.reset_index(drop=True)
        table[VALUE] = scored[VALUE].to_numpy()
        return table

    def _require_data(self):
        if self._rows is None:
            raise ExternalSessionFailure("No data pushed to the external session")

    def to_prediction_table(self, raw: np.ndarray) -> pd.DataFrame:
        """
        Reshape the routine's n x 4 output into a prediction table.

        Raises:
            ExternalSessionFailure: If the output does not match the pushed rows
        """
        self._require_data()
        raw = np.asarray(raw, dtype=float)
        if raw.ndim != 2 or raw.shape[1] != 4:
            raise ExternalSessionFailure(
                f"Expected an (n, 4) prediction table, got shape {raw.shape}"
            )

        positions = raw[:, 0].astype(int)
        n_rows = len(self._rows)
        if (
            len(positions) != n_rows
            or positions.min(initial=0) < 0
            or positions.max(initial=-1) >= n_rows
            or len(np.unique(positions)) != n_rows
        ):
            raise ExternalSessionFailure(
                f"Prediction table does not cover the {n_rows} pushed rows exactly once"
            )
        if np.isnan(raw[:, 3]).any():
            raise ExternalSessionFailure("Prediction table contains NaN values")

        order = np.argsort(positions)
        raw = raw[order]
        return pd.DataFrame({
            ROW_ID: self._rows[ROW_ID].to_numpy(),
            OUTCOME: raw[:, 1].astype(int),
            FOLD: raw[:, 2].astype(int),
            VALUE: invert_polarity(raw[:, 3]),
        })
