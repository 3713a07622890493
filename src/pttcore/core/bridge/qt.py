"""
Qt adapters for the bridge.

``QtEventRelay`` re-emits bus events as Qt signals so widgets can connect to
them directly. ``SurfacePoller`` drives a ``SurfaceClient`` from the Qt event
loop.
"""

from typing import Callable, List, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from ...utils.logger import get_logger
from ..events.normalizer import normalize_capture_state, normalize_models_payload
from ..settings.config import POLL_INTERVAL_MS
from .client import SurfaceClient
from .events import (
    BACKEND_LOG_EVENT,
    MODEL_STATUS_EVENT,
    PTT_ERROR_EVENT,
    PTT_STATE_EVENT,
    PTT_TRANSCRIPTION_EVENT,
    BridgeEvent,
    EventBus,
)

logger = get_logger(__name__)


class QtEventRelay(QObject):
    """
    Signals:
        capture_state_changed: CaptureState after every transition
        transcript_updated: Text of each completed dictation
        capture_error: Message of each entered error state
        queue_changed: QueueSnapshot after every queue change
        log_appended: Log entry dict
    """

    capture_state_changed = Signal(object)  # CaptureState
    transcript_updated = Signal(str)
    capture_error = Signal(str)
    queue_changed = Signal(object)  # QueueSnapshot
    log_appended = Signal(object)  # log entry dict

    def __init__(self, bus: EventBus, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._unlisteners: List[Callable[[], None]] = [
            bus.listen(PTT_STATE_EVENT, self._on_state),
            bus.listen(PTT_TRANSCRIPTION_EVENT, self._on_transcription),
            bus.listen(PTT_ERROR_EVENT, self._on_error),
            bus.listen(MODEL_STATUS_EVENT, self._on_models),
            bus.listen(BACKEND_LOG_EVENT, self._on_log),
        ]

    def close(self) -> None:
        for unlisten in self._unlisteners:
            unlisten()
        self._unlisteners = []

    def _on_state(self, event: BridgeEvent) -> None:
        self.capture_state_changed.emit(normalize_capture_state(event.payload))

    def _on_transcription(self, event: BridgeEvent) -> None:
        payload = event.payload if isinstance(event.payload, dict) else {}
        self.transcript_updated.emit(str(payload.get("text") or ""))

    def _on_error(self, event: BridgeEvent) -> None:
        payload = event.payload if isinstance(event.payload, dict) else {}
        self.capture_error.emit(str(payload.get("message") or ""))

    def _on_models(self, event: BridgeEvent) -> None:
        self.queue_changed.emit(normalize_models_payload(event.payload))

    def _on_log(self, event: BridgeEvent) -> None:
        if isinstance(event.payload, dict):
            self.log_appended.emit(event.payload)


class SurfacePoller(QObject):
    """
    Pumps a surface's event buffer and reconciles it on a fixed interval.

    Signals:
        refreshed: Emitted after each poll with the client
    """

    refreshed = Signal(object)  # SurfaceClient

    def __init__(
        self,
        client: SurfaceClient,
        interval_ms: int = POLL_INTERVAL_MS,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._client = client
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.poll_now)

    @property
    def is_running(self) -> bool:
        return self._timer.isActive()

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def poll_now(self) -> None:
        if not self._client.available:
            return
        if self._client.attached:
            self._client.pump()
        self._client.poll()
        self.refreshed.emit(self._client)
