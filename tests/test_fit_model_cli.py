"""
Tests for the fit_model command line entry point.
"""

import json

import pandas as pd
import pytest

from plpkit.models import LogisticRegressionPlugin
from plpkit.scripts.fit_model import main, parse_args
from plpkit.types import ModelSettings


@pytest.fixture
def inputs(cohort, tmp_path):
    population, plp_data = cohort
    population.drop(columns=["indexes"]).to_csv(tmp_path / "population.csv", index=False)
    plp_data.covariates.to_csv(tmp_path / "covariates.csv", index=False)
    plp_data.covariate_ref.to_csv(tmp_path / "covariate_ref.csv", index=False)
    LogisticRegressionPlugin().set(C=[0.1, 1.0]).save(tmp_path / "lasso.yaml")
    return tmp_path


def base_args(directory, settings="lasso.yaml"):
    return [
        "--population", str(directory / "population.csv"),
        "--covariates", str(directory / "covariates.csv"),
        "--settings", str(directory / settings),
        "--output-dir", str(directory / "out"),
    ]


class TestParseArgs:
    """Tests for argument parsing."""

    def test_required_arguments(self, tmp_path):
        args = parse_args(base_args(tmp_path))

        assert args.population == tmp_path / "population.csv"
        assert args.n_folds is None
        assert args.config is None

    def test_missing_settings_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["--population", "p.csv"])


class TestMain:
    """Tests for a full CLI run."""

    def test_fit_writes_model_and_predictions(self, inputs):
        exit_code = main(
            base_args(inputs) + ["--covariate-ref", str(inputs / "covariate_ref.csv"),
                                 "--n-folds", "3"]
        )

        assert exit_code == 0
        saved = json.loads((inputs / "out" / "model" / "fit_result.json").read_text())
        assert saved["type_tag"] == "sklearn"
        assert len(saved["search_summary"]) == 2

        prediction = pd.read_csv(inputs / "out" / "prediction.csv")
        assert len(prediction) == 120
        assert set(prediction["indexes"]) == {1, 2, 3}

        importance = pd.read_csv(inputs / "out" / "model" / "var_importance.csv")
        assert "covariateName" in importance.columns

        search = json.loads((inputs / "out" / "search.json").read_text())
        assert search["summary"]["model_name"] == "Lasso Logistic Regression"
        assert search["summary"]["n_configurations"] == 2
        assert [r["params"]["C"] for r in search["records"][:2]] == [0.1, 1.0]
        assert search["records"][-1]["is_final"]

    def test_unknown_trainer_returns_error_code(self, inputs):
        ModelSettings("fitH2O", [], "H2O").save(inputs / "h2o.yaml")

        assert main(base_args(inputs, settings="h2o.yaml")) == 1

    def test_config_file_is_applied(self, inputs):
        (inputs / "plpkit.yaml").write_text(f"artifact_root: {inputs / 'artifacts'}\nn_folds: 2\n")

        assert main(base_args(inputs) + ["--config", str(inputs / "plpkit.yaml")]) == 0

        prediction = pd.read_csv(inputs / "out" / "prediction.csv")
        assert set(prediction["indexes"]) == {1, 2}
