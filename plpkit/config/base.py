"""
Framework configuration dataclass.

Design Decisions:
1. Dataclass-based for type safety and IDE support
2. YAML serialization so a fit run can be reproduced from a file
3. Environment variable overrides (PLPKIT_*) for deployment
4. artifact_root is only a default; fit() always receives it explicitly
"""

import logging
import os
import sys
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Literal, Optional

import yaml

from plpkit.exceptions import InvalidConfiguration

logger = logging.getLogger(__name__)


@dataclass
class FrameworkConfig:
    """
    Configuration shared by the fit orchestration and the external session.

    Attributes:
        artifact_root: Directory under which plugins write persisted artifacts
        python_executable: Interpreter used to launch the external trainer
        session_timeout: Seconds to wait for one external round trip (None = unbounded)
        n_folds: Folds used when a population has to be split by assign_folds
        random_seed: Seed for fold assignment
        show_progress: Show a tqdm bar over the hyperparameter search
        log_level: Level used by the CLI entry point
        search_log_dir: Directory the hyperparameter search records are written to
            as search.json (None = not written)
    """

    artifact_root: Path = field(default_factory=lambda: Path("plp_models"))
    python_executable: str = field(default_factory=lambda: sys.executable)

    # Rationale: a full RNN grid on a large cohort can take hours per
    # configuration; the timeout only guards against a hung interpreter.
    session_timeout: Optional[float] = 6 * 3600.0

    n_folds: int = 3
    random_seed: int = 42

    show_progress: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    search_log_dir: Optional[Path] = None

    def __post_init__(self):
        """Convert string paths to Path objects."""
        if isinstance(self.artifact_root, str):
            self.artifact_root = Path(self.artifact_root)
        if isinstance(self.search_log_dir, str):
            self.search_log_dir = Path(self.search_log_dir)

    def to_dict(self) -> dict:
        """Convert config to dictionary for serialization."""
        d = asdict(self)
        d["artifact_root"] = str(d["artifact_root"])
        if d["search_log_dir"] is not None:
            d["search_log_dir"] = str(d["search_log_dir"])
        return d

    def save(self, path: Path) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    @classmethod
    def load(cls, path: Path) -> "FrameworkConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        try:
            return cls(**data)
        except TypeError as e:
            raise InvalidConfiguration(f"Invalid configuration file {path}: {e}")

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of warnings.

        Returns:
            List of warning messages (empty if all valid)
        """
        warnings = []

        if self.n_folds < 2:
            warnings.append(
                f"n_folds={self.n_folds} disables cross-validation. Hyperparameter "
                "selection will fall back to in-sample AUC."
            )

        if self.n_folds > 10:
            warnings.append(
                f"n_folds={self.n_folds} is high. Every configuration is trained "
                "once per fold."
            )

        if self.session_timeout is None:
            warnings.append(
                "session_timeout is None. A hung external trainer will block "
                "the fit call indefinitely."
            )
        elif self.session_timeout <= 0:
            warnings.append(
                f"session_timeout={self.session_timeout} is not positive. "
                "Every external call will time out."
            )

        return warnings


# Singleton instance storage
_config_instance: Optional[FrameworkConfig] = None


def get_config() -> FrameworkConfig:
    """Get the singleton configuration instance.

    Returns:
        FrameworkConfig: The singleton configuration instance.

    Example:
        >>> config1 = get_config()
        >>> config2 = get_config()
        >>> config1 is config2
        True
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = FrameworkConfig()
        load_env_config(_config_instance)

    return _config_instance


def load_env_config(config: Optional[FrameworkConfig] = None) -> FrameworkConfig:
    """Load configuration from environment variables if present.

    Supported variables:
        - PLPKIT_ARTIFACT_ROOT: Override artifact_root
        - PLPKIT_PYTHON: Override python_executable
        - PLPKIT_SESSION_TIMEOUT: Seconds (> 0), or "none" for no timeout
        - PLPKIT_N_FOLDS: Number of folds (>= 1)
        - PLPKIT_RANDOM_SEED: Integer seed

    Invalid values are ignored and the current value is kept.

    Args:
        config: Optional FrameworkConfig instance to update. If None, creates a new one.

    Returns:
        FrameworkConfig: The updated configuration instance.
    """
    if config is None:
        config = FrameworkConfig()

    if artifact_root := os.environ.get("PLPKIT_ARTIFACT_ROOT"):
        config.artifact_root = Path(artifact_root)

    if python := os.environ.get("PLPKIT_PYTHON"):
        config.python_executable = python

    if timeout := os.environ.get("PLPKIT_SESSION_TIMEOUT"):
        if timeout.lower() == "none":
            config.session_timeout = None
        else:
            try:
                value = float(timeout)
                if value > 0:
                    config.session_timeout = value
            except ValueError:
                logger.warning(f"Ignoring invalid PLPKIT_SESSION_TIMEOUT={timeout!r}")

    if n_folds := os.environ.get("PLPKIT_N_FOLDS"):
        try:
            value = int(n_folds)
            if value >= 1:
                config.n_folds = value
        except ValueError:
            logger.warning(f"Ignoring invalid PLPKIT_N_FOLDS={n_folds!r}")

    if seed := os.environ.get("PLPKIT_RANDOM_SEED"):
        try:
            config.random_seed = int(seed)
        except ValueError:
            logger.warning(f"Ignoring invalid PLPKIT_RANDOM_SEED={seed!r}")

    return config


def reset_config() -> None:
    """Reset the configuration singleton to None."""
    global _config_instance
    _config_instance = None
