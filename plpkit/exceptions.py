"""
Exception hierarchy for plpkit.

Every error is raised synchronously to the caller of set/fit/predict.
Nothing in the framework retries or recovers in the background.
"""


class PlpKitError(Exception):
    """Base exception for all framework errors."""
    pass


class InvalidConfiguration(PlpKitError):
    """Hyperparameters or configuration values are missing, non-numeric or out of range."""
    pass


class IncompatibleDataFormat(PlpKitError):
    """Population or covariate data is not in the expected layout."""
    pass


class MissingImplementation(PlpKitError):
    """No plugin is registered for a type tag or trainer id."""

    def __init__(self, key: str, kind: str = "type tag"):
        self.key = key
        self.kind = kind
        super().__init__(f"No implementation registered for {kind} '{key}'")


class ExternalSessionFailure(PlpKitError):
    """The out-of-process trainer is unreachable, timed out, crashed or replied with malformed output."""
    pass
