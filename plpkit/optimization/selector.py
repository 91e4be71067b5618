"""
Model selection over a hyperparameter grid.

Selection rule: the configuration with the largest |AUC - 0.5| wins, not the
largest AUC. A model whose scores are systematically inverted is still
informative. The first configuration wins ties, so selection does not depend
on anything but the grid order.

The winner is refit once on all included rows (is_final=True); models built
while evaluating configurations are discarded.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from plpkit.callbacks.logging_callbacks import SearchTracker
from plpkit.exceptions import InvalidConfiguration
from plpkit.types import EvaluationResult, HyperparameterConfiguration

logger = logging.getLogger(__name__)

CHANCE_AUC = 0.5

Evaluate = Callable[[HyperparameterConfiguration], EvaluationResult]


def distance_from_chance(performance: float) -> float:
    """|performance - 0.5|; NaN counts as uninformative."""
    if performance is None or np.isnan(performance):
        return -1.0
    return abs(performance - CHANCE_AUC)


def choose_best(performances: Sequence[float]) -> int:
    """
    Index of the most informative performance.

    Example:
        >>> choose_best([0.40, 0.55, 0.90])
        2
    """
    if len(performances) == 0:
        raise InvalidConfiguration("Cannot select from an empty search")
    distances = [distance_from_chance(p) for p in performances]
    # np.argmax returns the first maximum
    return int(np.argmax(distances))


@dataclass
class SelectionResult:
    """Outcome of the search phase."""
    best_index: int
    best_configuration: HyperparameterConfiguration
    search_summary: List[Tuple[HyperparameterConfiguration, float]]

    @property
    def best_performance(self) -> float:
        return self.search_summary[self.best_index][1]


class ModelSelector:
    """
    Evaluate every configuration, pick the best, refit it.

    Example:
        >>> selector = ModelSelector(evaluate, tracker=SearchTracker("Lasso"))
        >>> selection = selector.select(model_settings.configurations)
        >>> final = selector.refit(selection)
    """

    def __init__(
        self,
        evaluate: Evaluate,
        tracker: Optional[SearchTracker] = None,
        show_progress: bool = False,
    ):
        """
        Args:
            evaluate: Scores one configuration (FoldEvaluator or external adapter)
            tracker: Records per-configuration results
            show_progress: Show a tqdm bar over the grid
        """
        self.evaluate = evaluate
        self.tracker = tracker or SearchTracker()
        self.show_progress = show_progress

    def select(self, configurations: Sequence[HyperparameterConfiguration]) -> SelectionResult:
        """Evaluate configurations in grid order and choose the best one."""
        if len(configurations) == 0:
            raise InvalidConfiguration("No hyperparameter configurations to search")

        summary: List[Tuple[HyperparameterConfiguration, float]] = []

        pbar = tqdm(
            configurations,
            desc="Hyperparameter search",
            leave=False,
            disable=not self.show_progress,
        )
        for index, configuration in enumerate(pbar):
            self.tracker.start_configuration(index, configuration.to_dict())
            result = self.evaluate(configuration)
            self.tracker.end_configuration(result.performance)
            summary.append((configuration, float(result.performance)))
            pbar.set_postfix({"auc": f"{result.performance:.4f}"})

        best_index = choose_best([performance for _, performance in summary])
        self.tracker.log_summary(best_index)

        best = summary[best_index][0]
        logger.info(
            f"Selected configuration {best_index}: {best.to_dict()} "
            f"(AUC {summary[best_index][1]:.4f})"
        )

        return SelectionResult(
            best_index=best_index,
            best_configuration=best.as_final(),
            search_summary=summary,
        )

    def refit(self, selection: SelectionResult) -> EvaluationResult:
        """Train the selected configuration on all included rows."""
        configuration = selection.best_configuration
        if not configuration.is_final:
            configuration = configuration.as_final()

        self.tracker.start_configuration(
            selection.best_index, configuration.to_dict(), is_final=True
        )
        result = self.evaluate(configuration)
        self.tracker.end_configuration(result.performance)
        return result

    def run(
        self,
        configurations: Sequence[HyperparameterConfiguration],
    ) -> Tuple[SelectionResult, EvaluationResult]:
        """Search then refit; the tracker is saved when it has an output directory."""
        selection = self.select(configurations)
        final = self.refit(selection)
        if self.tracker.output_dir is not None:
            self.tracker.save()
        return selection, final
