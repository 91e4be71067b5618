"""
plpkit: patient-level prediction model fitting with pluggable trainers.

Typical use:
    >>> from plpkit import LogisticRegressionPlugin, fit_plp, predict_plp
    >>> settings = LogisticRegressionPlugin().set(C=[0.01, 0.1, 1.0])
    >>> result = fit_plp(population, plp_data, settings)
    >>> prediction = predict_plp(result, population, plp_data)
"""

__version__ = "1.0.0"

from plpkit.exceptions import (
    ExternalSessionFailure,
    IncompatibleDataFormat,
    InvalidConfiguration,
    MissingImplementation,
    PlpKitError,
)
from plpkit.types import (
    EvaluationResult,
    FitResult,
    HyperparameterConfiguration,
    ModelSettings,
    TrainedArtifact,
)
from plpkit.data import PlpData, assign_folds
from plpkit.registry import ModelRegistry, default_registry, fit_plp, predict_plp
from plpkit.models import (
    GradientBoostingPlugin,
    LogisticRegressionPlugin,
    ModelPlugin,
    RNNTorchPlugin,
)
from plpkit.persistence import load_fit_result, save_fit_result

__all__ = [
    "__version__",
    "ExternalSessionFailure",
    "IncompatibleDataFormat",
    "InvalidConfiguration",
    "MissingImplementation",
    "PlpKitError",
    "EvaluationResult",
    "FitResult",
    "HyperparameterConfiguration",
    "ModelSettings",
    "TrainedArtifact",
    "PlpData",
    "assign_folds",
    "ModelRegistry",
    "default_registry",
    "fit_plp",
    "predict_plp",
    "GradientBoostingPlugin",
    "LogisticRegressionPlugin",
    "ModelPlugin",
    "RNNTorchPlugin",
    "load_fit_result",
    "save_fit_result",
]
