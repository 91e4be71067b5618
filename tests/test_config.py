"""
Tests for framework configuration.
"""

import sys
from pathlib import Path

import pytest

from plpkit.config import FrameworkConfig, get_config, load_env_config, reset_config
from plpkit.exceptions import InvalidConfiguration


class TestFrameworkConfig:
    """Tests for the FrameworkConfig dataclass."""

    def test_defaults(self):
        config = FrameworkConfig()

        assert config.artifact_root == Path("plp_models")
        assert config.python_executable == sys.executable
        assert config.n_folds == 3
        assert config.validate() == []

    def test_string_path_converted(self):
        assert FrameworkConfig(artifact_root="out/models").artifact_root == Path("out/models")
        assert FrameworkConfig(search_log_dir="out/search").search_log_dir == Path("out/search")

    def test_yaml_round_trip(self, tmp_path):
        config = FrameworkConfig(
            artifact_root=tmp_path / "models",
            n_folds=5,
            session_timeout=60.0,
            search_log_dir=tmp_path / "search",
        )

        config.save(tmp_path / "plpkit.yaml")
        loaded = FrameworkConfig.load(tmp_path / "plpkit.yaml")

        assert loaded == config

    def test_unknown_key_raises(self, tmp_path):
        (tmp_path / "bad.yaml").write_text("n_folds: 3\nfolds_please: 10\n")

        with pytest.raises(InvalidConfiguration):
            FrameworkConfig.load(tmp_path / "bad.yaml")

    def test_validate_warnings(self):
        assert any("in-sample" in w for w in FrameworkConfig(n_folds=1).validate())
        assert any("indefinitely" in w for w in FrameworkConfig(session_timeout=None).validate())
        assert FrameworkConfig(session_timeout=-1).validate()


class TestEnvironmentOverrides:
    """Tests for load_env_config."""

    def test_overrides_applied(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PLPKIT_ARTIFACT_ROOT", str(tmp_path))
        monkeypatch.setenv("PLPKIT_PYTHON", "/opt/python3")
        monkeypatch.setenv("PLPKIT_SESSION_TIMEOUT", "30")
        monkeypatch.setenv("PLPKIT_N_FOLDS", "5")
        monkeypatch.setenv("PLPKIT_RANDOM_SEED", "11")

        config = load_env_config()

        assert config.artifact_root == tmp_path
        assert config.python_executable == "/opt/python3"
        assert config.session_timeout == 30.0
        assert config.n_folds == 5
        assert config.random_seed == 11

    def test_timeout_none(self, monkeypatch):
        monkeypatch.setenv("PLPKIT_SESSION_TIMEOUT", "none")

        assert load_env_config().session_timeout is None

    @pytest.mark.parametrize("name,value", [
        ("PLPKIT_SESSION_TIMEOUT", "soon"),
        ("PLPKIT_SESSION_TIMEOUT", "-5"),
        ("PLPKIT_N_FOLDS", "three"),
        ("PLPKIT_N_FOLDS", "0"),
        ("PLPKIT_RANDOM_SEED", "x"),
    ])
    def test_invalid_values_ignored(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        config = load_env_config()

        assert config == FrameworkConfig()


class TestSingleton:
    """Tests for get_config / reset_config."""

    def test_same_instance(self):
        assert get_config() is get_config()

    def test_reset_creates_new_instance(self):
        first = get_config()
        reset_config()

        assert get_config() is not first

    def test_env_read_on_first_access(self, monkeypatch):
        monkeypatch.setenv("PLPKIT_N_FOLDS", "4")
        reset_config()

        assert get_config().n_folds == 4
