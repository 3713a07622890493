from .normalizer import (
    normalize_artifact,
    normalize_artifact_status,
    normalize_capture_state,
    normalize_event_name,
    normalize_models_payload,
)

__all__ = [
    "normalize_artifact",
    "normalize_artifact_status",
    "normalize_capture_state",
    "normalize_event_name",
    "normalize_models_payload",
]
