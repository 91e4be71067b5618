"""Search tracking callbacks."""

from plpkit.callbacks.logging_callbacks import ConfigurationRecord, SearchTracker

__all__ = ["ConfigurationRecord", "SearchTracker"]
