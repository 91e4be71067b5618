"""
Model plugins.

Importing this package registers every plugin with default_registry.
"""

from plpkit.models.base import ModelPlugin, NativePlugin, prediction_table
from plpkit.models.logistic_regression import LogisticRegressionPlugin
from plpkit.models.gradient_boosting import GradientBoostingPlugin
from plpkit.models.rnn_torch import RNNTorchPlugin

__all__ = [
    "ModelPlugin",
    "NativePlugin",
    "prediction_table",
    "LogisticRegressionPlugin",
    "GradientBoostingPlugin",
    "RNNTorchPlugin",
]
