"""
Cross-validated scoring of a single hyperparameter configuration.

Design Decision: Pooled out-of-fold AUC (NOT mean of fold AUCs)

For every fold f the model is trained on the other included folds and the
rows of fold f are scored. Each score is written into one buffer that covers
all included rows, and the AUC is computed once on the complete buffer.
Averaging per-fold AUCs gives a different number and is never used.

Fallback: a population with fewer than two folds (or no fold column at all)
is scored in-sample. This overstates performance but is kept so that
fold-less populations still fit; a warning is logged.
"""

import logging
from typing import Callable

import numpy as np
import pandas as pd

from plpkit.data.covariates import FeatureMatrix
from plpkit.data.population import FOLD, OUTCOME, ROW_ID, ensure_fold_column, labels
from plpkit.evaluation.metrics import VALUE, compute_roc_auc
from plpkit.exceptions import IncompatibleDataFormat
from plpkit.trainers.base_trainer import BaseTrainer
from plpkit.types import EvaluationResult, HyperparameterConfiguration

logger = logging.getLogger(__name__)

Metric = Callable[[np.ndarray, np.ndarray], float]


class FoldEvaluator:
    """
    Score one configuration against a fold-partitioned population.

    Example:
        >>> evaluator = FoldEvaluator(LogisticRegressionTrainer())
        >>> result = evaluator.evaluate(configuration, population, features)
        >>> result.performance
        0.74
    """

    def __init__(self, trainer: BaseTrainer, metric: Metric = compute_roc_auc):
        """
        Args:
            trainer: Fits and scores one configuration
            metric: (labels, scores) -> performance, AUC by default
        """
        self.trainer = trainer
        self.metric = metric

    def evaluate(
        self,
        configuration: HyperparameterConfiguration,
        population: pd.DataFrame,
        features: FeatureMatrix,
    ) -> EvaluationResult:
        """
        Train and score one configuration.

        Args:
            configuration: Hyperparameters; is_final selects the full refit
            population: Population with fold indices in the indexes column
            features: Feature matrix row-aligned to the whole population

        Returns:
            EvaluationResult with the performance, the model (final/in-sample
            runs only) and the flattened hyperparameter summary
        """
        if features.n_rows != len(population):
            raise IncompatibleDataFormat(
                f"Feature matrix has {features.n_rows} rows but population has "
                f"{len(population)}"
            )

        population = ensure_fold_column(population)
        positions = np.flatnonzero(population[FOLD].to_numpy() > 0)
        included = population.iloc[positions]
        folds = included[FOLD].to_numpy()
        y = labels(included)
        X = features.take(positions)
        distinct_folds = np.unique(folds)

        if not configuration.is_final and len(distinct_folds) >= 2:
            scores = self._out_of_fold_scores(configuration, X, y, folds, distinct_folds)
            model = None
        else:
            if not configuration.is_final:
                logger.warning(
                    "Population has fewer than two folds - scoring configuration in-sample"
                )
            model = self.trainer.train(X, y, configuration)
            scores = np.asarray(self.trainer.predict_proba(model, X), dtype=float)

        performance = self.metric(y, scores)

        predictions = pd.DataFrame({
            ROW_ID: included[ROW_ID].to_numpy(),
            OUTCOME: included[OUTCOME].to_numpy(),
            FOLD: folds,
            VALUE: scores,
        })

        summary = configuration.to_dict()
        summary["performance"] = performance

        return EvaluationResult(
            performance=performance,
            model=model,
            hyperparameter_summary=summary,
            predictions=predictions,
        )

    def _out_of_fold_scores(
        self,
        configuration: HyperparameterConfiguration,
        X: FeatureMatrix,
        y: np.ndarray,
        folds: np.ndarray,
        distinct_folds: np.ndarray,
    ) -> np.ndarray:
        """Pooled prediction buffer; each row written by the fold that held it out."""
        buffer = np.full(len(y), np.nan)

        for fold in distinct_folds:
            held_out = folds == fold
            train_pos = np.flatnonzero(~held_out)
            test_pos = np.flatnonzero(held_out)

            model = self.trainer.train(X.take(train_pos), y[train_pos], configuration)
            buffer[test_pos] = self.trainer.predict_proba(model, X.take(test_pos))

            logger.debug(
                f"Fold {fold}: trained on {len(train_pos)} rows, scored {len(test_pos)}"
            )

        return buffer
