from .settings import (
    HotkeyBinding,
    HotkeyModifiers,
    Settings,
    SettingsStore,
    SettingsUpdate,
    get_config_dir,
)

__all__ = [
    "HotkeyBinding",
    "HotkeyModifiers",
    "Settings",
    "SettingsStore",
    "SettingsUpdate",
    "get_config_dir",
]
