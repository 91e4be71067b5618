"""Framework configuration."""

from plpkit.config.base import FrameworkConfig, get_config, load_env_config, reset_config

__all__ = ["FrameworkConfig", "get_config", "load_env_config", "reset_config"]
