"""
Canonicalizes heterogeneous backend payloads.

State payloads arrive either as a bare tag (``"capturing"``) or as a single-key
mapping whose value may carry a message (``{"error": {"message": "..."}}``).
Every decoder here is total: malformed input degrades to a defined default
and never raises.
"""

import math
from typing import Any, Mapping, Optional, Tuple

from ...errors import MalformedEvent
from ..models.artifact import ArtifactStatus, DownloadableArtifact, QueueSnapshot
from ..ptt.state import CaptureState, CaptureStatus

CAPTURE_TAGS = {
    "idle": CaptureStatus.IDLE,
    "armed": CaptureStatus.ARMED,
    "ready": CaptureStatus.ARMED,
    "capturing": CaptureStatus.CAPTURING,
    "recording": CaptureStatus.CAPTURING,
    "processing": CaptureStatus.PROCESSING,
    "error": CaptureStatus.ERROR,
    "failed": CaptureStatus.ERROR,
}

ARTIFACT_TAGS = {
    "not_started": ArtifactStatus.NOT_STARTED,
    "notstarted": ArtifactStatus.NOT_STARTED,
    "missing": ArtifactStatus.NOT_STARTED,
    "queued": ArtifactStatus.QUEUED,
    "pending": ArtifactStatus.QUEUED,
    "downloading": ArtifactStatus.DOWNLOADING,
    "ready": ArtifactStatus.READY,
    "installed": ArtifactStatus.READY,
    "failed": ArtifactStatus.FAILED,
    "error": ArtifactStatus.FAILED,
}


def _decode_tagged(raw: Any) -> Tuple[str, Optional[str]]:
    """Split a tagged payload into ``(tag, message)``; raise MalformedEvent otherwise."""
    if isinstance(raw, str):
        tag = raw.strip().lower()
        if not tag:
            raise MalformedEvent("empty tag")
        return tag, None

    if isinstance(raw, Mapping):
        if "status" in raw:
            status = raw["status"]
            if not isinstance(status, str) or not status.strip():
                raise MalformedEvent("status field is not a tag")
            return status.strip().lower(), _message_of(raw)

        if len(raw) != 1:
            raise MalformedEvent(f"expected a single-key mapping, got {len(raw)} keys")
        (key, value), = raw.items()
        if not isinstance(key, str) or not key.strip():
            raise MalformedEvent("mapping key is not a tag")
        if isinstance(value, Mapping):
            message = _message_of(value)
        elif isinstance(value, str) and value.strip():
            message = value
        else:
            message = None
        return key.strip().lower(), message

    raise MalformedEvent(f"unsupported payload type {type(raw).__name__}")


def _message_of(value: Mapping) -> Optional[str]:
    message = value.get("message")
    if isinstance(message, str) and message.strip():
        return message
    return None


def normalize_capture_state(raw: Any) -> CaptureState:
    try:
        tag, message = _decode_tagged(raw)
    except MalformedEvent:
        return CaptureState.idle()

    status = CAPTURE_TAGS.get(tag)
    if status is None:
        return CaptureState.idle()
    if status is CaptureStatus.ERROR:
        # Message may be None here; the state machine fills it in.
        return CaptureState(CaptureStatus.ERROR, message)
    return CaptureState(status)


def normalize_artifact_status(raw: Any) -> ArtifactStatus:
    try:
        tag, _ = _decode_tagged(raw)
    except MalformedEvent:
        return ArtifactStatus.NOT_STARTED
    return ARTIFACT_TAGS.get(tag, ArtifactStatus.NOT_STARTED)


def normalize_event_name(raw: Any) -> str:
    if isinstance(raw, Mapping) and isinstance(raw.get("type"), str):
        return raw["type"].strip().lower()
    try:
        tag, _ = _decode_tagged(raw)
    except MalformedEvent:
        return ""
    return tag


def _first(raw: Mapping, *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def normalize_artifact(raw: Any) -> Optional[DownloadableArtifact]:
    if not isinstance(raw, Mapping):
        return None

    artifact_id = _first(raw, "id", "name")
    if not isinstance(artifact_id, str) or not artifact_id.strip():
        return None

    name = raw.get("name")
    total = int(_number(_first(raw, "total_bytes", "totalBytes", "size")))
    downloaded = int(_number(_first(raw, "downloaded_bytes", "downloadedBytes", "downloaded")))

    return DownloadableArtifact(
        id=artifact_id,
        name=name if isinstance(name, str) and name else artifact_id,
        total_bytes=total,
        downloaded_bytes=min(downloaded, total),
        status=normalize_artifact_status(_first(raw, "status", "state", "phase")),
        speed_bytes_per_sec=_number(_first(raw, "speed_bytes_per_sec", "speed", "rate")),
        eta_seconds=int(math.ceil(_number(_first(raw, "eta_seconds", "eta")))),
        active=bool(_first(raw, "active", "is_active", "isActive")),
    )


def normalize_models_payload(raw: Any) -> QueueSnapshot:
    if isinstance(raw, list):
        items, active_model = raw, None
    elif isinstance(raw, Mapping) and isinstance(raw.get("models"), list):
        items = raw["models"]
        active_model = _first(raw, "active_model", "activeModel")
        if not isinstance(active_model, str):
            active_model = None
    else:
        return QueueSnapshot()

    models = [m for m in (normalize_artifact(item) for item in items) if m is not None]
    return QueueSnapshot.from_models(models, active_model=active_model)
