"""
Global push-to-talk hotkey.

Uses pynput for the system-wide keyboard hook. Key events are reduced to
canonical names (``"f9"``, ``"a"``, ``"ctrl"``) and matched against the active
``HotkeyBinding``.
"""

import threading
from typing import Iterable, Optional, Set

from PySide6.QtCore import QObject, Signal

from ...utils.logger import get_logger
from ..settings.settings import HotkeyBinding

logger = get_logger(__name__)

MODIFIER_NAMES = ("ctrl", "alt", "shift", "meta")

_MODIFIER_ALIASES = {
    "ctrl": "ctrl",
    "ctrl_l": "ctrl",
    "ctrl_r": "ctrl",
    "alt": "alt",
    "alt_l": "alt",
    "alt_r": "alt",
    "alt_gr": "alt",
    "shift": "shift",
    "shift_l": "shift",
    "shift_r": "shift",
    "cmd": "meta",
    "cmd_l": "meta",
    "cmd_r": "meta",
    "super": "meta",
}

_KEY_ALIASES = {
    "esc": "escape",
    "return": "enter",
}


def canonical_key_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    name = name.lower()
    if name in _MODIFIER_ALIASES:
        return _MODIFIER_ALIASES[name]
    return _KEY_ALIASES.get(name, name)


def binding_matches(binding: HotkeyBinding, pressed: Iterable[str]) -> bool:
    """True when the trigger key and exactly the bound modifiers are held."""
    pressed = set(pressed)
    if binding.key not in pressed:
        return False
    required = set(binding.modifiers.active())
    held = {name for name in MODIFIER_NAMES if name in pressed}
    return held == required


class HotkeyListener(QObject):
    """
    Listens for the push-to-talk hotkey.

    Signals:
        triggered: Emitted once per hotkey press
    """

    triggered = Signal()

    def __init__(self, binding: Optional[HotkeyBinding] = None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._lock = threading.Lock()
        self._binding = binding or HotkeyBinding()
        self._pressed: Set[str] = set()
        self._is_hotkey_active = False
        self._keyboard_listener = None

    @property
    def binding(self) -> HotkeyBinding:
        with self._lock:
            return self._binding

    def update_binding(self, binding: HotkeyBinding) -> None:
        with self._lock:
            self._binding = binding
            self._is_hotkey_active = False
        logger.info(f"Hotkey rebound to {binding.to_display_string()}")

    def key_pressed(self, name: Optional[str]) -> None:
        name = canonical_key_name(name)
        if name is None:
            return
        with self._lock:
            self._pressed.add(name)
            fire = not self._is_hotkey_active and binding_matches(self._binding, self._pressed)
            if fire:
                self._is_hotkey_active = True
        if fire:
            self.triggered.emit()

    def key_released(self, name: Optional[str]) -> None:
        name = canonical_key_name(name)
        with self._lock:
            self._pressed.discard(name)
            if not binding_matches(self._binding, self._pressed):
                self._is_hotkey_active = False

    def start(self) -> None:
        from pynput import keyboard

        if self._keyboard_listener is not None:
            return
        self._keyboard_listener = keyboard.Listener(
            on_press=lambda key: self.key_pressed(_pynput_key_name(key)),
            on_release=lambda key: self.key_released(_pynput_key_name(key)),
        )
        self._keyboard_listener.start()
        logger.info(f"Hotkey listener started: {self._binding.to_display_string()}")

        if hasattr(self._keyboard_listener, "IS_TRUSTED") and not self._keyboard_listener.IS_TRUSTED:
            logger.warning(
                "Hotkey listener is NOT TRUSTED. Accessibility permissions not granted."
            )

    def stop(self) -> None:
        if self._keyboard_listener is not None:
            self._keyboard_listener.stop()
            self._keyboard_listener = None
        with self._lock:
            self._pressed.clear()
            self._is_hotkey_active = False


def _pynput_key_name(key) -> Optional[str]:
    char = getattr(key, "char", None)
    if isinstance(char, str) and char:
        return char
    return getattr(key, "name", None)
