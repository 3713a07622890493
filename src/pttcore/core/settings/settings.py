"""
Settings management with JSON persistence.

Handles loading, saving, and validating application settings.
Uses platformdirs for cross-platform directory resolution.
"""

import json
import threading
from pathlib import Path
from typing import Literal, Optional

from platformdirs import user_config_path
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ...errors import InvalidArgument
from ...utils.logger import get_logger

logger = get_logger(__name__)

APP_NAME = "pttcore"

SUPPORTED_KEYS = frozenset(
    [chr(code) for code in range(ord("a"), ord("z") + 1)]
    + [f"f{index}" for index in range(1, 13)]
    + [
        "space",
        "enter",
        "escape",
        "tab",
        "backspace",
        "left",
        "right",
        "up",
        "down",
    ]
)

OutputMode = Literal["paste", "type", "clipboard"]


def get_config_dir() -> Path:
    return user_config_path(APP_NAME, ensure_exists=True)


class HotkeyModifiers(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ctrl: bool = False
    alt: bool = False
    shift: bool = False
    meta: bool = False

    def active(self) -> list[str]:
        return [name for name in ("ctrl", "alt", "shift", "meta") if getattr(self, name)]


class HotkeyBinding(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str = "f9"
    modifiers: HotkeyModifiers = Field(default_factory=HotkeyModifiers)

    @field_validator("key", mode="before")
    @classmethod
    def key_supported(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("key must be a non-empty string")
        key = v.strip().lower()
        if key not in SUPPORTED_KEYS:
            raise ValueError(f"unsupported hotkey key '{v}'")
        return key

    @classmethod
    def parse(cls, data) -> "HotkeyBinding":
        if isinstance(data, HotkeyBinding):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid hotkey binding: {e.errors()[0]['msg']}")

    def to_display_string(self) -> str:
        parts = [mod.capitalize() for mod in self.modifiers.active()]
        parts.append(self.key.upper() if len(self.key) == 1 else self.key.capitalize())
        return " + ".join(parts)


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=False)

    output_mode: OutputMode = "paste"
    auto_export: bool = True
    latency_ms: int = Field(default=500, ge=0, le=5000)
    input_device: str = "default"
    hotkey: HotkeyBinding = Field(default_factory=HotkeyBinding)

    @field_validator("input_device")
    @classmethod
    def input_device_not_empty(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("input_device must be a non-empty string")
        return v

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "Settings":
        config_file = config_file or get_config_dir() / "settings.json"

        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)

                if not isinstance(data, dict):
                    raise TypeError("settings root must be an object")

                valid_keys = cls.model_fields.keys()
                filtered_data = {k: v for k, v in data.items() if k in valid_keys}

                return cls._load_with_fallbacks(filtered_data)
            except (json.JSONDecodeError, TypeError) as e:
                logger.warning(
                    f"Could not load settings: {e}. Using defaults.", exc_info=True
                )
                return cls()

        return cls()

    @classmethod
    def _load_with_fallbacks(cls, data: dict) -> "Settings":
        """Load settings with field-level fallback to defaults on validation errors."""
        defaults = cls()
        result_data = {}

        for field_name in cls.model_fields:
            if field_name not in data:
                result_data[field_name] = getattr(defaults, field_name)
                continue
            try:
                validated = cls.model_validate(
                    {**defaults.model_dump(), field_name: data[field_name]}
                )
                result_data[field_name] = getattr(validated, field_name)
            except ValidationError:
                default_val = getattr(defaults, field_name)
                logger.warning(
                    f"Invalid {field_name} {data[field_name]!r}, resetting to {default_val}"
                )
                result_data[field_name] = default_val

        return cls.model_construct(**result_data)

    def save(self, config_file: Optional[Path] = None) -> None:
        config_file = config_file or get_config_dir() / "settings.json"
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(), f, indent=2)

    def apply_update(self, update: "SettingsUpdate") -> "Settings":
        changes = update.model_dump(exclude_none=True)
        if "hotkey" in changes:
            changes["hotkey"] = update.hotkey
        return self.model_copy(update=changes)


class SettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    output_mode: Optional[OutputMode] = None
    auto_export: Optional[bool] = None
    latency_ms: Optional[int] = Field(default=None, ge=0, le=5000)
    input_device: Optional[str] = None
    hotkey: Optional[HotkeyBinding] = None

    @field_validator("input_device")
    @classmethod
    def input_device_not_empty(cls, v):
        if v is not None and not v.strip():
            raise ValueError("input_device must be a non-empty string")
        return v

    @classmethod
    def parse(cls, data) -> "SettingsUpdate":
        if isinstance(data, SettingsUpdate):
            return data
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "update"
            raise InvalidArgument(f"Invalid settings update for {field}: {error['msg']}")


class SettingsStore:
    """
    Owns the current settings and persists every accepted change.

    A store created without a path keeps settings in memory only.
    """

    def __init__(self, config_file: Optional[Path] = None, persist: bool = True):
        self._lock = threading.RLock()
        self._persist = persist
        self._config_file = config_file
        if persist:
            self._config_file = config_file or get_config_dir() / "settings.json"
            self._settings = Settings.load(self._config_file)
        else:
            self._settings = Settings()

    @property
    def settings(self) -> Settings:
        with self._lock:
            return self._settings.model_copy(deep=True)

    def update(self, update) -> Settings:
        update = SettingsUpdate.parse(update)
        with self._lock:
            self._settings = self._settings.apply_update(update)
            self._save()
            return self._settings.model_copy(deep=True)

    def set_hotkey(self, binding) -> HotkeyBinding:
        binding = HotkeyBinding.parse(binding)
        with self._lock:
            self._settings = self._settings.model_copy(update={"hotkey": binding})
            self._save()
        return binding

    def _save(self) -> None:
        if not self._persist:
            return
        try:
            self._settings.save(self._config_file)
        except OSError as e:
            logger.warning(f"Could not persist settings: {e}")
