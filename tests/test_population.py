"""
Unit tests for population helpers and fold assignment.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from plpkit.data.cross_validation import assign_folds
from plpkit.data.population import (
    SCORING_COLUMNS,
    ensure_fold_column,
    fold_ids,
    included_rows,
    labels,
    scoring_rows,
    validate_population,
)
from plpkit.exceptions import IncompatibleDataFormat, InvalidConfiguration


@pytest.fixture
def population():
    return pd.DataFrame({
        "rowId": [1, 2, 3, 4, 5, 6],
        "outcomeCount": [0, 2, 0, 1, 0, 0],
        "indexes": [1, 2, 0, 1, -1, 2],
    })


class TestValidatePopulation:
    """Tests for validate_population."""

    def test_valid_population_passes(self, population):
        assert validate_population(population) is population

    def test_missing_column_raises(self):
        with pytest.raises(IncompatibleDataFormat, match="outcomeCount"):
            validate_population(pd.DataFrame({"rowId": [1, 2]}))

    def test_not_a_dataframe_raises(self):
        with pytest.raises(IncompatibleDataFormat):
            validate_population({"rowId": [1], "outcomeCount": [0]})

    def test_duplicate_row_ids_raise(self):
        with pytest.raises(IncompatibleDataFormat, match="unique"):
            validate_population(pd.DataFrame({"rowId": [1, 1], "outcomeCount": [0, 1]}))

    def test_negative_outcome_raises(self):
        with pytest.raises(IncompatibleDataFormat):
            validate_population(pd.DataFrame({"rowId": [1, 2], "outcomeCount": [0, -1]}))

    def test_scoring_population_needs_only_row_id(self):
        scoring = pd.DataFrame({"rowId": [1, 2]})

        assert validate_population(scoring, required=SCORING_COLUMNS) is scoring

    def test_scoring_population_still_checks_row_ids(self):
        with pytest.raises(IncompatibleDataFormat, match="rowId"):
            validate_population(pd.DataFrame({"personId": [1]}), required=SCORING_COLUMNS)


class TestFoldHelpers:
    """Tests for fold column handling."""

    def test_ensure_fold_column_warns_and_sets_one(self, caplog):
        population = pd.DataFrame({"rowId": [1, 2], "outcomeCount": [0, 1]})

        with caplog.at_level(logging.WARNING):
            result = ensure_fold_column(population)

        assert result["indexes"].tolist() == [1, 1]
        assert "indexes" not in population.columns
        assert "not present" in caplog.text

    def test_ensure_fold_column_keeps_existing(self, population):
        assert ensure_fold_column(population) is population

    def test_included_rows_drops_non_positive_folds(self, population):
        included = included_rows(population)

        assert included["rowId"].tolist() == [1, 2, 4, 6]
        assert included.index.tolist() == [0, 1, 2, 3]

    def test_scoring_rows_drops_non_positive_folds(self, population):
        assert scoring_rows(population)["rowId"].tolist() == [1, 2, 4, 6]

    def test_scoring_rows_without_fold_column_keeps_every_row(self, caplog):
        population = pd.DataFrame({"rowId": [7, 8, 9]})

        with caplog.at_level(logging.WARNING):
            scored = scoring_rows(population)

        assert scored["rowId"].tolist() == [7, 8, 9]
        assert list(scored.columns) == ["rowId"]
        assert caplog.text == ""

    def test_fold_ids(self, population):
        assert fold_ids(population) == [1, 2]

    def test_fold_ids_without_column(self):
        assert fold_ids(pd.DataFrame({"rowId": [1], "outcomeCount": [0]})) == []

    def test_labels_are_binary(self, population):
        assert labels(population).tolist() == [0, 1, 0, 1, 0, 0]


class TestAssignFolds:
    """Tests for stratified fold assignment."""

    def test_folds_are_one_based_and_cover_all_rows(self, make_cohort):
        population, _ = make_cohort(n_rows=90)
        population = population.drop(columns=["indexes"])

        result = assign_folds(population, n_folds=3, seed=7)

        assert sorted(result["indexes"].unique().tolist()) == [1, 2, 3]
        assert len(result) == 90

    def test_every_fold_holds_outcomes(self, make_cohort):
        population, _ = make_cohort(n_rows=90)

        result = assign_folds(population, n_folds=3)

        per_fold = result.groupby("indexes")["outcomeCount"].sum()
        assert (per_fold == 10).all()

    def test_same_seed_same_assignment(self, make_cohort):
        population, _ = make_cohort(n_rows=60)

        first = assign_folds(population, n_folds=3, seed=1)["indexes"].tolist()
        second = assign_folds(population, n_folds=3, seed=1)["indexes"].tolist()

        assert first == second

    def test_input_is_not_modified(self, make_cohort):
        population, _ = make_cohort(n_rows=30)
        original = population["indexes"].copy()

        assign_folds(population, n_folds=2, seed=3)

        pd.testing.assert_series_equal(population["indexes"], original)

    def test_rare_outcome_falls_back_to_unstratified(self, caplog):
        population = pd.DataFrame({
            "rowId": np.arange(10),
            "outcomeCount": [1] + [0] * 9,
        })

        with caplog.at_level(logging.WARNING):
            result = assign_folds(population, n_folds=3)

        assert "unstratified" in caplog.text
        assert set(result["indexes"]) == {1, 2, 3}

    def test_too_few_folds_raises(self, make_cohort):
        population, _ = make_cohort(n_rows=30)

        with pytest.raises(InvalidConfiguration):
            assign_folds(population, n_folds=1)

    def test_more_folds_than_rows_raises(self):
        population = pd.DataFrame({"rowId": [1, 2], "outcomeCount": [0, 1]})

        with pytest.raises(InvalidConfiguration):
            assign_folds(population, n_folds=3)
