"""
Push-to-talk capture lifecycle.

The state machine is the single owner of the capture state and the last
transcript. Commands, hotkey presses and collaborator reports all go through
it; every change is published on the event bus.
"""

import threading
from typing import TYPE_CHECKING, Any, Optional

from ...errors import InvalidState
from ...utils.logger import get_logger
from ..events.normalizer import normalize_capture_state
from .state import GENERIC_ERROR_MESSAGE, CaptureState, CaptureStatus

if TYPE_CHECKING:
    from ..bridge.events import EventBus

logger = get_logger(__name__)


class PttStateMachine:
    """
    Owns CaptureState and Transcript.

    Transitions:
        Idle, Armed       --start-->   Capturing
        Capturing         --stop-->    Processing
        Processing        --finish-->  Armed (transcript updated)
        any               --fail-->    Error(message)
        Error             --reset-->   Idle
        Idle              --arm-->     Armed
        Idle, Armed, Capturing --disarm--> Idle

    Recognition runs elsewhere: ``toggle()`` returns as soon as the local
    transition is recorded and completion arrives later through ``finish()``.
    """

    def __init__(self, bus: Optional["EventBus"] = None):
        self._lock = threading.RLock()
        self._bus = bus
        self._state = CaptureState.idle()
        self._transcript = ""
        self._last_error_message: Optional[str] = None

    def current_state(self) -> CaptureState:
        with self._lock:
            return self._state

    def last_transcript(self) -> str:
        with self._lock:
            return self._transcript

    def toggle(self) -> CaptureState:
        with self._lock:
            status = self._state.status
            if status is CaptureStatus.PROCESSING:
                logger.debug("Toggle ignored while processing")
                return self._state
            if status is CaptureStatus.CAPTURING:
                return self.stop()
            return self.start()

    def start(self) -> CaptureState:
        with self._lock:
            self._require("start", CaptureStatus.IDLE, CaptureStatus.ARMED)
            return self._set_state(CaptureState.capturing())

    def stop(self) -> CaptureState:
        with self._lock:
            if self._state.status is CaptureStatus.PROCESSING:
                return self._state
            self._require("stop", CaptureStatus.CAPTURING)
            return self._set_state(CaptureState.processing())

    def finish(self, text: Optional[str]) -> CaptureState:
        with self._lock:
            self._require("finish", CaptureStatus.PROCESSING)
            self._transcript = text or ""
            logger.info(
                f"Transcription complete: '{self._transcript[:50]}{'...' if len(self._transcript) > 50 else ''}'"
            )
            self._publish_transcript()
            return self._set_state(CaptureState.armed())

    def fail(self, message: Optional[str] = None) -> CaptureState:
        with self._lock:
            return self._set_state(CaptureState(CaptureStatus.ERROR, message))

    def reset(self) -> CaptureState:
        with self._lock:
            self._require("reset", CaptureStatus.ERROR)
            return self._set_state(CaptureState.idle())

    def arm(self) -> CaptureState:
        with self._lock:
            if self._state.status is CaptureStatus.ARMED:
                return self._state
            self._require("arm", CaptureStatus.IDLE)
            return self._set_state(CaptureState.armed())

    def disarm(self) -> CaptureState:
        with self._lock:
            self._require(
                "disarm",
                CaptureStatus.IDLE,
                CaptureStatus.ARMED,
                CaptureStatus.CAPTURING,
            )
            return self._set_state(CaptureState.idle())

    def apply_event(self, raw_event: Any) -> CaptureState:
        """
        Adopt a state reported across the process boundary.

        Accepts a bare tag or a single-key mapping. Malformed input becomes
        Idle; this never raises.
        """
        state = normalize_capture_state(raw_event)
        with self._lock:
            return self._set_state(state)

    def _require(self, transition: str, *allowed: CaptureStatus) -> None:
        if self._state.status not in allowed:
            raise InvalidState(
                f"Cannot {transition} from {self._state}",
                details={"state": self._state.to_wire(), "transition": transition},
            )

    def _resolve_error(self, state: CaptureState) -> CaptureState:
        message = state.message
        if not message:
            message = self._last_error_message or GENERIC_ERROR_MESSAGE
        self._last_error_message = message
        return CaptureState.error(message)

    def _set_state(self, next_state: CaptureState) -> CaptureState:
        if next_state.status is CaptureStatus.ERROR:
            next_state = self._resolve_error(next_state)

        if next_state == self._state:
            return self._state

        previous = self._state
        self._state = next_state
        logger.info(f"Capture state: {previous} -> {next_state}")

        if self._bus is not None:
            from ..bridge.events import PTT_ERROR_EVENT, PTT_STATE_EVENT

            if next_state.status is CaptureStatus.ERROR:
                self._bus.publish(PTT_ERROR_EVENT, {"message": next_state.message})
            self._bus.publish(PTT_STATE_EVENT, next_state.to_wire())

        return self._state

    def _publish_transcript(self) -> None:
        if self._bus is not None:
            from ..bridge.events import PTT_TRANSCRIPTION_EVENT

            self._bus.publish(PTT_TRANSCRIPTION_EVENT, {"text": self._transcript})
