"""
Saving and loading fit results.

Layout of a saved fit:
    <directory>/
        fit_result.json      settings, chosen configuration, search summary,
                             covariate map, metadata
        var_importance.csv
        model.joblib         in-memory artifacts (sklearn, xgboost)
        artifact/            copy of an on-disk artifact directory (python)

Design Decisions:

1. Atomic writes:
   - Files are written under a temporary name, then moved into place
   - An interrupted save never leaves a truncated fit_result.json

2. On-disk artifacts are copied:
   - A plugin's artifact directory may be reused by the next fit, so the
     saved fit owns its own copy
"""

import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Union

import joblib
import numpy as np
import pandas as pd

from plpkit import __version__
from plpkit.exceptions import IncompatibleDataFormat
from plpkit.types import (
    FitResult,
    HyperparameterConfiguration,
    ModelSettings,
    TrainedArtifact,
)

logger = logging.getLogger(__name__)

RESULT_FILE = "fit_result.json"
IMPORTANCE_FILE = "var_importance.csv"
MODEL_FILE = "model.joblib"
ARTIFACT_DIR = "artifact"


def _json_default(value: Any) -> Any:
    """Convert numpy scalars and paths for json.dump."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    return str(value)


def _write_json(data: dict, path: Path):
    temp_path = path.with_suffix(".tmp")
    with open(temp_path, "w") as f:
        json.dump(data, f, indent=2, default=_json_default)
    shutil.move(str(temp_path), str(path))


def save_fit_result(result: FitResult, directory: Union[str, Path]) -> Path:
    """
    Save a fit result to a directory.

    Args:
        result: Result of a plugin's fit()
        directory: Target directory, created if needed

    Returns:
        Path to fit_result.json
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    artifact = result.artifact
    if artifact.is_persisted:
        target = directory / ARTIFACT_DIR
        if target.exists():
            shutil.rmtree(target)
        shutil.copytree(artifact.path, target)
        artifact_file = ARTIFACT_DIR
    else:
        model_path = directory / MODEL_FILE
        temp_path = model_path.with_suffix(".tmp")
        joblib.dump(artifact.model, temp_path)
        shutil.move(str(temp_path), str(model_path))
        artifact_file = MODEL_FILE

    result.var_importance.to_csv(directory / IMPORTANCE_FILE, index=False)

    data = {
        "version": __version__,
        "saved_at": datetime.now().isoformat(),
        "type_tag": artifact.type_tag,
        "prediction_kind": artifact.prediction_kind,
        "artifact": artifact_file,
        "model_settings": result.model_settings.to_dict(),
        "chosen_configuration": result.chosen_configuration.to_dict(),
        "search_summary": [
            {"params": configuration.to_dict(), "performance": performance}
            for configuration, performance in result.search_summary
        ],
        "training_duration": result.training_duration,
        # [covariateId, column] pairs; JSON object keys would turn ids into strings
        "covariate_map": [[cid, column] for cid, column in result.covariate_map.items()],
        "outcome_id": result.outcome_id,
        "cohort_id": result.cohort_id,
        "metadata": result.metadata,
    }
    result_path = directory / RESULT_FILE
    _write_json(data, result_path)

    logger.info(f"Saved {artifact.type_tag} fit result to {directory}")
    return result_path


def load_fit_result(directory: Union[str, Path]) -> FitResult:
    """
    Load a fit result written by save_fit_result().

    Raises:
        IncompatibleDataFormat: If the directory does not hold a saved fit
    """
    directory = Path(directory)
    result_path = directory / RESULT_FILE
    if not result_path.exists():
        raise IncompatibleDataFormat(f"No {RESULT_FILE} in {directory}")

    with open(result_path) as f:
        data = json.load(f)

    try:
        if data["artifact"] == MODEL_FILE:
            artifact = TrainedArtifact(
                type_tag=data["type_tag"],
                model=joblib.load(directory / MODEL_FILE),
                prediction_kind=data["prediction_kind"],
            )
        else:
            artifact = TrainedArtifact(
                type_tag=data["type_tag"],
                path=directory / data["artifact"],
                prediction_kind=data["prediction_kind"],
            )

        result = FitResult(
            artifact=artifact,
            chosen_configuration=HyperparameterConfiguration(
                data["chosen_configuration"], is_final=True
            ),
            search_summary=tuple(
                (HyperparameterConfiguration(entry["params"]), float(entry["performance"]))
                for entry in data["search_summary"]
            ),
            var_importance=pd.read_csv(directory / IMPORTANCE_FILE),
            training_duration=float(data["training_duration"]),
            covariate_map={cid: int(column) for cid, column in data["covariate_map"]},
            model_settings=ModelSettings.from_dict(data["model_settings"]),
            outcome_id=data.get("outcome_id"),
            cohort_id=data.get("cohort_id"),
            metadata=data.get("metadata", {}),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise IncompatibleDataFormat(f"Malformed fit result in {directory}: {e}")

    logger.info(f"Loaded {artifact.type_tag} fit result from {directory}")
    return result
