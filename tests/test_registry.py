"""
Unit tests for the model registry and prediction dispatch.
"""

import numpy as np
import pandas as pd
import pytest

import plpkit.models  # noqa: F401  (registers the shipped plugins)
from plpkit.exceptions import MissingImplementation
from plpkit.models.base import ModelPlugin, prediction_table
from plpkit.registry import ModelRegistry, default_registry, fit_plp, predict_plp
from plpkit.types import FitResult, ModelSettings, TrainedArtifact


class ConstantPlugin(ModelPlugin):
    """Predicts 0.25 for every row."""

    type_tag = "constant"
    trainer_id = "fitConstant"
    name = "Constant"

    def set(self, level=(0.25,)):
        return self._model_settings({"level": list(level)})

    def fit(self, population, plp_data, model_settings, outcome_id=None, cohort_id=None,
            artifact_root=None):
        configuration = model_settings.configurations[0].as_final()
        return FitResult(
            artifact=TrainedArtifact(type_tag=self.type_tag, model=configuration["level"]),
            chosen_configuration=configuration,
            search_summary=((model_settings.configurations[0], 0.5),),
            var_importance=pd.DataFrame(),
            training_duration=0.0,
            covariate_map={},
            model_settings=model_settings,
            outcome_id=outcome_id,
            cohort_id=cohort_id,
        )

    def predict(self, fit_result, population, plp_data):
        return prediction_table(population, np.full(len(population), fit_result.artifact.model))


class OtherConstantPlugin(ConstantPlugin):
    pass


@pytest.fixture
def registry():
    registry = ModelRegistry()
    registry.register(ConstantPlugin())
    return registry


@pytest.fixture
def population():
    return pd.DataFrame({"rowId": [1, 2, 3], "outcomeCount": [0, 1, 0], "indexes": [1, 2, 1]})


class TestModelRegistry:
    """Tests for ModelRegistry."""

    def test_lookup_by_tag_and_trainer(self, registry):
        assert isinstance(registry.get_plugin("constant"), ConstantPlugin)
        assert isinstance(registry.get_trainer("fitConstant"), ConstantPlugin)
        assert "constant" in registry
        assert len(registry) == 1
        assert registry.type_tags() == ["constant"]

    def test_unknown_tag_raises_missing_implementation(self, registry):
        with pytest.raises(MissingImplementation, match="'h2o'") as excinfo:
            registry.get_predictor("h2o")

        assert excinfo.value.key == "h2o"

    def test_unknown_trainer_raises_missing_implementation(self, registry):
        with pytest.raises(MissingImplementation, match="trainer id"):
            registry.get_trainer("fitUnknown")

    def test_conflicting_registration_raises(self, registry):
        with pytest.raises(ValueError, match="already registered"):
            registry.register(OtherConstantPlugin())

    def test_replace_overrides(self, registry):
        registry.register(OtherConstantPlugin(), replace=True)

        assert isinstance(registry.get_plugin("constant"), OtherConstantPlugin)

    def test_reregistering_same_plugin_type_is_allowed(self, registry):
        registry.register(ConstantPlugin())

        assert len(registry) == 1

    def test_unregister(self, registry):
        registry.unregister("constant")

        assert "constant" not in registry
        with pytest.raises(MissingImplementation):
            registry.get_trainer("fitConstant")

    def test_plugin_without_keys_is_rejected(self):
        class Nameless(ConstantPlugin):
            type_tag = ""

        with pytest.raises(ValueError):
            ModelRegistry().register(Nameless())

    def test_default_registry_holds_shipped_plugins(self):
        assert {"sklearn", "xgboost", "python"} <= set(default_registry.type_tags())
        assert default_registry.get_trainer("fitRNNTorch").name == "RNN Torch"


class TestDispatch:
    """Tests for fit_plp and predict_plp."""

    def test_fit_and_predict_dispatch(self, registry, population):
        settings = ConstantPlugin().set()

        result = fit_plp(population, None, settings, outcome_id=3, registry=registry)
        prediction = predict_plp(result, population, None, registry=registry)

        assert result.outcome_id == 3
        assert prediction["rowId"].tolist() == [1, 2, 3]
        assert prediction["value"].tolist() == [0.25, 0.25, 0.25]

    def test_unregistered_tag_raises(self, registry, population):
        settings = ConstantPlugin().set()
        result = fit_plp(population, None, settings, registry=registry)
        registry.unregister("constant")

        with pytest.raises(MissingImplementation):
            predict_plp(result, population, None, registry=registry)

    def test_unknown_trainer_id_raises(self, registry, population):
        settings = ModelSettings(trainer_id="fitH2O", configurations=[], name="H2O")

        with pytest.raises(MissingImplementation, match="fitH2O"):
            fit_plp(population, None, settings, registry=registry)

    def test_prediction_table_carries_population_columns(self, population):
        table = prediction_table(population, [0.1, 0.2, 0.3])

        assert list(table.columns) == ["rowId", "outcomeCount", "indexes", "value"]

    def test_explicit_empty_registry_is_not_replaced_by_default(self, cohort):
        population, plp_data = cohort
        settings = default_registry.get_trainer("fitLassoLogisticRegression").set(C=1.0)
        result = fit_plp(population, plp_data, settings)
        empty = ModelRegistry()

        with pytest.raises(MissingImplementation, match="'sklearn'"):
            predict_plp(result, population, plp_data, registry=empty)
        with pytest.raises(MissingImplementation, match="fitLassoLogisticRegression"):
            fit_plp(population, plp_data, settings, registry=empty)
