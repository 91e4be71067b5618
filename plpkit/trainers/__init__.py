"""In-process trainers and the cross-validated fold evaluator."""

from plpkit.trainers.base_trainer import BaseTrainer
from plpkit.trainers.fold_evaluator import FoldEvaluator
from plpkit.trainers.sklearn_trainer import LogisticRegressionTrainer
from plpkit.trainers.xgboost_trainer import XGBoostTrainer

__all__ = ["BaseTrainer", "FoldEvaluator", "LogisticRegressionTrainer", "XGBoostTrainer"]
