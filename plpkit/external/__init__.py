"""Out-of-process trainer session and adapter."""

from plpkit.external.session import ExternalSession
from plpkit.external.adapter import (
    DEFAULT_PREDICT_ROUTINE,
    DEFAULT_TRAIN_ROUTINE,
    MODEL_TYPES,
    ExternalTrainerAdapter,
    artifact_dir_lock,
    invert_polarity,
)

__all__ = [
    "ExternalSession",
    "DEFAULT_PREDICT_ROUTINE",
    "DEFAULT_TRAIN_ROUTINE",
    "MODEL_TYPES",
    "ExternalTrainerAdapter",
    "artifact_dir_lock",
    "invert_polarity",
]
