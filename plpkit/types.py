"""
Shared data model for settings, artifacts and fit results.

Design Decisions:

1. Frozen dataclasses:
   - ModelSettings, HyperparameterConfiguration and FitResult are created
     once and never mutated; ownership of a FitResult passes to the caller

2. Tagged artifacts:
   - TrainedArtifact carries the type_tag used by the registry to find the
     predictor, and either an in-memory model or a directory on disk
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd
import yaml

from plpkit.exceptions import InvalidConfiguration

PREDICTION_KIND_BINARY = "binary"


@dataclass(frozen=True)
class HyperparameterConfiguration:
    """
    One assignment of a value to every hyperparameter.

    Attributes:
        params: Parameter name -> value, in declaration order
        is_final: True for the final refit on all included rows
    """
    params: Mapping[str, Any]
    is_final: bool = False

    def __post_init__(self):
        object.__setattr__(self, "params", dict(self.params))

    def __getitem__(self, name: str) -> Any:
        return self.params[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)

    def as_final(self) -> "HyperparameterConfiguration":
        """Copy of this configuration marked for the final refit."""
        return replace(self, is_final=True)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to a plain dict (parameters only)."""
        return dict(self.params)

    def __repr__(self) -> str:
        flag = ", final" if self.is_final else ""
        return f"HyperparameterConfiguration({self.params}{flag})"


@dataclass(frozen=True)
class ModelSettings:
    """
    Output of a plugin's set(): the search space plus the trainer that runs it.

    Attributes:
        trainer_id: Registry key of the plugin whose fit() consumes these settings
        configurations: Expanded grid, in search order
        name: Display name of the model
    """
    trainer_id: str
    configurations: Tuple[HyperparameterConfiguration, ...]
    name: str

    def __post_init__(self):
        object.__setattr__(self, "configurations", tuple(self.configurations))

    def __len__(self) -> int:
        return len(self.configurations)

    def to_dict(self) -> dict:
        return {
            "trainer_id": self.trainer_id,
            "name": self.name,
            "configurations": [c.to_dict() for c in self.configurations],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ModelSettings":
        try:
            return cls(
                trainer_id=data["trainer_id"],
                name=data.get("name", data["trainer_id"]),
                configurations=[
                    HyperparameterConfiguration(params) for params in data["configurations"]
                ],
            )
        except (KeyError, TypeError) as e:
            raise InvalidConfiguration(f"Malformed model settings: {e}")

    def save(self, path: Path) -> None:
        """Save settings to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load(cls, path: Path) -> "ModelSettings":
        """Load settings from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise InvalidConfiguration(f"{path} does not contain a settings mapping")
        return cls.from_dict(data)


@dataclass(frozen=True)
class TrainedArtifact:
    """
    Opaque trained model owned by the plugin registered under type_tag.

    Exactly one of model (in-memory) or path (persisted directory) is set.
    """
    type_tag: str
    model: Any = None
    path: Optional[Path] = None
    prediction_kind: str = PREDICTION_KIND_BINARY

    @property
    def is_persisted(self) -> bool:
        return self.path is not None


@dataclass
class EvaluationResult:
    """Result of scoring one configuration."""
    performance: float
    model: Any
    hyperparameter_summary: Dict[str, Any]
    predictions: Optional[pd.DataFrame] = None


@dataclass(frozen=True)
class FitResult:
    """
    Everything a fit() call produces.

    Attributes:
        artifact: The final refit's trained model
        chosen_configuration: Winning configuration (is_final=True)
        search_summary: (configuration, performance) per evaluated configuration
        var_importance: DataFrame with covariateId, covariateValue, included
        training_duration: Wall-clock seconds for the whole fit
        covariate_map: covariateId -> column index used for training
        model_settings: Settings the fit was run with
        outcome_id: Outcome cohort identifier
        cohort_id: Target cohort identifier
        metadata: Free-form information from the input data
    """
    artifact: TrainedArtifact
    chosen_configuration: HyperparameterConfiguration
    search_summary: Tuple[Tuple[HyperparameterConfiguration, float], ...]
    var_importance: pd.DataFrame
    training_duration: float
    covariate_map: Mapping[Any, int]
    model_settings: ModelSettings
    outcome_id: Any = None
    cohort_id: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def type_tag(self) -> str:
        return self.artifact.type_tag

    @property
    def prediction_kind(self) -> str:
        return self.artifact.prediction_kind

    def search_summary_frame(self) -> pd.DataFrame:
        """Search summary as one row per configuration plus a performance column."""
        rows: List[Dict[str, Any]] = []
        for configuration, performance in self.search_summary:
            row = configuration.to_dict()
            row["performance"] = performance
            rows.append(row)
        return pd.DataFrame(rows)
