"""
Observer-side view of the core.

A surface (main window, floating overlay) may attach late, miss events, or
run without a live command channel at all. ``SurfaceClient`` keeps a local
view that converges on the core's state: pushed events are applied as they
arrive, and a full snapshot is pulled on attach, after buffer overflow, and
on every poll.
"""

from collections import deque
from typing import Any, Deque, List, Mapping, Optional

from ...errors import TransportUnavailable
from ...utils.logger import get_logger
from ..events.normalizer import normalize_capture_state, normalize_models_payload
from ..models.artifact import QueueSnapshot
from ..ptt.state import CaptureState
from ..settings.config import LOG_BUFFER_CAPACITY
from .commands import CommandBridge
from .events import (
    BACKEND_LOG_EVENT,
    MODEL_STATUS_EVENT,
    PTT_ERROR_EVENT,
    PTT_STATE_EVENT,
    PTT_TRANSCRIPTION_EVENT,
    BridgeEvent,
    Subscription,
)

logger = get_logger(__name__)


class SurfaceClient:
    def __init__(
        self,
        bridge: Optional[CommandBridge] = None,
        log_capacity: int = LOG_BUFFER_CAPACITY,
    ):
        self._bridge = bridge
        self._subscription: Optional[Subscription] = None
        self.state = CaptureState.idle()
        self.transcript = ""
        self.models = QueueSnapshot()
        self.last_error: Optional[str] = None
        self._logs: Deque[dict] = deque(maxlen=log_capacity)
        self.resync_count = 0

    @property
    def available(self) -> bool:
        return self._bridge is not None and self._bridge.is_available()

    @property
    def attached(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    @property
    def logs(self) -> List[dict]:
        return list(self._logs)

    def attach(self) -> bool:
        """Subscribe to pushed events and pull a full snapshot.

        Returns False in degraded mode, leaving the view at its defaults.
        """
        if not self.available:
            logger.warning("Surface attached without a command channel; running read-only")
            return False
        if not self.attached:
            self._subscription = self._bridge.bus.subscribe()
        self.reconcile()
        return True

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def reconcile(self) -> None:
        if not self.available:
            return
        # Buffered events predate the snapshot below.
        if self._subscription is not None:
            self._subscription.drain()
            self._subscription.mark_synced()
        self.state = normalize_capture_state(self._bridge.get_state())
        self.transcript = self._bridge.get_last_transcript()
        self.models = normalize_models_payload(self._bridge.get_models())
        self._logs.clear()
        self._logs.extend(self._bridge.get_logs())

    def poll(self) -> None:
        self.reconcile()

    def pump(self) -> int:
        """Apply buffered events; returns how many were applied."""
        if self._subscription is None:
            return 0
        events = self._subscription.drain()
        if self._subscription.needs_resync:
            logger.info(
                f"Surface missed {self._subscription.dropped} events, reconciling"
            )
            self._subscription.mark_synced()
            self.resync_count += 1
            self.reconcile()
            return 0
        for event in events:
            self.apply(event)
        return len(events)

    def apply(self, event: BridgeEvent) -> None:
        payload = event.payload
        if event.name == PTT_STATE_EVENT:
            self.state = normalize_capture_state(payload)
        elif event.name == PTT_TRANSCRIPTION_EVENT:
            text = payload.get("text") if isinstance(payload, Mapping) else payload
            self.transcript = text if isinstance(text, str) else ""
        elif event.name == PTT_ERROR_EVENT:
            message = payload.get("message") if isinstance(payload, Mapping) else payload
            self.last_error = message if isinstance(message, str) else None
        elif event.name == MODEL_STATUS_EVENT:
            self.models = normalize_models_payload(payload)
        elif event.name == BACKEND_LOG_EVENT:
            if isinstance(payload, Mapping):
                self._logs.append(dict(payload))

    def invoke(self, command: str, payload: Optional[Mapping[str, Any]] = None) -> Any:
        if not self.available:
            raise TransportUnavailable()
        return self._bridge.invoke(command, payload)
