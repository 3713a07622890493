"""
Request/response command surface of the core.

Every command is a method on ``CommandBridge`` and can also be dispatched by
name through ``invoke``. Results are returned in wire form (plain JSON-able
values); failures are raised as ``PttCoreError`` subclasses.
"""

import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ...errors import InvalidArgument, NotFound, TransportUnavailable
from ...utils.logger import LogBuffer, get_logger
from ..models.queue import DownloadQueueManager
from ..ptt.machine import PttStateMachine
from ..settings.settings import HotkeyBinding, SettingsStore
from .events import EventBus

logger = get_logger(__name__)

WireState = Union[str, Dict[str, Any]]


class CommandBridge:
    def __init__(
        self,
        machine: PttStateMachine,
        queue: DownloadQueueManager,
        settings_store: SettingsStore,
        log_buffer: Optional[LogBuffer] = None,
        bus: Optional[EventBus] = None,
        on_hotkey_changed: Optional[Callable[[HotkeyBinding], None]] = None,
    ):
        self._machine = machine
        self._queue = queue
        self._settings_store = settings_store
        self._log_buffer = log_buffer
        self._bus = bus or EventBus()
        self._on_hotkey_changed = on_hotkey_changed
        self._closed = threading.Event()

        self._commands: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "get_state": lambda p: self.get_state(),
            "get_last_transcript": lambda p: self.get_last_transcript(),
            "ptt_get_state": lambda p: self.ptt_get_state(),
            "ptt_toggle_recording": lambda p: self.ptt_toggle_recording(),
            "ptt_start": lambda p: self.ptt_start(),
            "ptt_stop": lambda p: self.ptt_stop(),
            "ptt_reset": lambda p: self.ptt_reset(),
            "ptt_send_event": lambda p: self.ptt_send_event(_arg(p, "event", whole=True)),
            "ptt_complete": lambda p: self.ptt_complete(_arg(p, "text", default="")),
            "ptt_fail": lambda p: self.ptt_fail(_arg(p, "message", default=None)),
            "ptt_set_hotkey": lambda p: self.ptt_set_hotkey(_arg(p, "binding", whole=True)),
            "get_models": lambda p: self.get_models(),
            "model_download": lambda p: self.model_download(_model_id(p)),
            "model_select": lambda p: self.model_select(_model_id(p)),
            "model_retry": lambda p: self.model_retry(_model_id(p)),
            "model_fail": lambda p: self.model_fail(
                _model_id(p), _arg(p, "message", default="")
            ),
            "get_settings": lambda p: self.get_settings(),
            "update_settings": lambda p: self.update_settings(_arg(p, "update", whole=True)),
            "get_logs": lambda p: self.get_logs(),
        }

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def commands(self) -> List[str]:
        return sorted(self._commands)

    def is_available(self) -> bool:
        return not self._closed.is_set()

    def close(self) -> None:
        if not self._closed.is_set():
            self._closed.set()
            logger.info("Command bridge closed")

    def invoke(self, command: str, payload: Optional[Mapping[str, Any]] = None) -> Any:
        self._ensure_available()
        handler = self._commands.get(command)
        if handler is None:
            raise NotFound(f"Unknown command: {command}", details={"command": command})
        if payload is not None and not isinstance(payload, Mapping):
            raise InvalidArgument(f"Payload for {command} must be an object")
        logger.debug(f"Command: {command}")
        return handler(payload or {})

    # ---- capture ----------------------------------------------------------

    def get_state(self) -> WireState:
        self._ensure_available()
        return self._machine.current_state().to_wire()

    def ptt_get_state(self) -> WireState:
        return self.get_state()

    def get_last_transcript(self) -> str:
        self._ensure_available()
        return self._machine.last_transcript()

    def ptt_toggle_recording(self) -> WireState:
        self._ensure_available()
        return self._machine.toggle().to_wire()

    def ptt_start(self) -> WireState:
        self._ensure_available()
        return self._machine.arm().to_wire()

    def ptt_stop(self) -> WireState:
        self._ensure_available()
        return self._machine.disarm().to_wire()

    def ptt_reset(self) -> WireState:
        self._ensure_available()
        return self._machine.reset().to_wire()

    def ptt_send_event(self, event: Any) -> WireState:
        self._ensure_available()
        return self._machine.apply_event(event).to_wire()

    def ptt_complete(self, text: Optional[str]) -> WireState:
        self._ensure_available()
        if text is not None and not isinstance(text, str):
            raise InvalidArgument("text must be a string")
        return self._machine.finish(text).to_wire()

    def ptt_fail(self, message: Optional[str] = None) -> WireState:
        self._ensure_available()
        return self._machine.fail(message if isinstance(message, str) else None).to_wire()

    def ptt_set_hotkey(self, binding: Any) -> Dict[str, Any]:
        self._ensure_available()
        binding = self._settings_store.set_hotkey(binding)
        logger.info(f"Hotkey set to {binding.to_display_string()}")
        if self._on_hotkey_changed is not None:
            self._on_hotkey_changed(binding)
        return binding.model_dump()

    # ---- models -----------------------------------------------------------

    def get_models(self) -> Dict[str, Any]:
        self._ensure_available()
        return self._queue.snapshot().to_wire()

    def model_download(self, model_id: str) -> Dict[str, Any]:
        self._ensure_available()
        self._queue.request_download(model_id)
        return _ack(model_id)

    def model_select(self, model_id: str) -> Dict[str, Any]:
        self._ensure_available()
        self._queue.select(model_id)
        return _ack(model_id)

    def model_retry(self, model_id: str) -> Dict[str, Any]:
        self._ensure_available()
        self._queue.retry(model_id)
        return _ack(model_id)

    def model_fail(self, model_id: str, message: str = "") -> Dict[str, Any]:
        self._ensure_available()
        self._queue.fail(model_id, message or "")
        return _ack(model_id)

    # ---- settings and logs ------------------------------------------------

    def get_settings(self) -> Dict[str, Any]:
        self._ensure_available()
        return self._settings_store.settings.model_dump()

    def update_settings(self, update: Any) -> Dict[str, Any]:
        self._ensure_available()
        previous = self._settings_store.settings
        settings = self._settings_store.update(update)
        if settings.hotkey != previous.hotkey and self._on_hotkey_changed is not None:
            self._on_hotkey_changed(settings.hotkey)
        return settings.model_dump()

    def get_logs(self) -> List[dict]:
        self._ensure_available()
        if self._log_buffer is None:
            return []
        return self._log_buffer.entries()

    def _ensure_available(self) -> None:
        if self._closed.is_set():
            raise TransportUnavailable()


def _arg(payload: Mapping[str, Any], name: str, default: Any = None, whole: bool = False) -> Any:
    """Read a named argument; with ``whole`` a payload lacking the key is the argument itself."""
    if name in payload:
        return payload[name]
    if whole and payload:
        return payload
    return default


def _model_id(payload: Mapping[str, Any]) -> str:
    model_id = payload.get("model_id", payload.get("modelId", payload.get("id")))
    if not isinstance(model_id, str) or not model_id:
        raise InvalidArgument("model_id is required")
    return model_id


def _ack(model_id: str) -> Dict[str, Any]:
    return {"ok": True, "model_id": model_id}
