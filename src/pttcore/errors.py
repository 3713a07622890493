"""
Error taxonomy shared by the state machine, the download queue and the bridge.

Command-level failures are raised to the caller. Surfaces turn them into
user-facing messages via ``to_dict()``.
"""

from typing import Any, Dict, Optional


class PttCoreError(Exception):
    code = "core_error"

    def __init__(self, message: str, *, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details is not None:
            payload["error"]["details"] = self.details
        return payload


class MalformedEvent(PttCoreError):
    """Raised internally while decoding; the normalizer absorbs it."""

    code = "malformed_event"


class NotFound(PttCoreError, LookupError):
    code = "not_found"


class InvalidState(PttCoreError):
    code = "invalid_state"


class InvalidArgument(PttCoreError, ValueError):
    code = "invalid_argument"


class TransportUnavailable(PttCoreError):
    code = "transport_unavailable"

    def __init__(self, message: str = "Command channel unavailable", **kwargs):
        super().__init__(message, **kwargs)
