import logging
import sys
import threading
from collections import deque
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Deque, List, Optional

from platformdirs import user_log_path

if TYPE_CHECKING:
    from ..core.bridge.events import EventBus

ROOT_LOGGER_NAME = "pttcore"


def get_log_dir() -> Path:
    return user_log_path(ROOT_LOGGER_NAME, ensure_exists=True)


_logger_instance: Optional[logging.Logger] = None


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    global _logger_instance

    if _logger_instance is None:
        from ..core.settings.config import LOG_TO_CONSOLE, get_log_level

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)

        if root_logger.handlers:
            _logger_instance = root_logger
        else:
            level = get_log_level()
            root_logger.setLevel(level)

            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

            log_file = get_log_dir() / "app.log"
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

            if LOG_TO_CONSOLE:
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(level)
                console_handler.setFormatter(formatter)
                root_logger.addHandler(console_handler)

            root_logger.propagate = False

            _logger_instance = root_logger

    if name == ROOT_LOGGER_NAME:
        return _logger_instance

    return logging.getLogger(name)


class LogBuffer(logging.Handler):
    """
    Bounded in-memory log ring backing the ``get_logs`` command.

    Every accepted record is also published as a ``backend-log`` event when a
    bus is attached, so surfaces can tail the log without polling.
    """

    def __init__(
        self,
        capacity: int = 500,
        bus: Optional["EventBus"] = None,
        level: int = logging.INFO,
    ):
        super().__init__(level)
        self._entries: Deque[dict] = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()
        self._bus = bus

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "message": record.getMessage(),
                "timestamp": int(record.created * 1000),
                "level": record.levelname,
                "target": record.name,
            }
        except Exception:
            self.handleError(record)
            return

        with self._entries_lock:
            self._entries.append(entry)

        if self._bus is not None:
            from ..core.bridge.events import BACKEND_LOG_EVENT

            try:
                self._bus.publish(BACKEND_LOG_EVENT, entry)
            except Exception:
                self.handleError(record)

    def entries(self) -> List[dict]:
        with self._entries_lock:
            return [dict(entry) for entry in self._entries]

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


def attach_log_buffer(buffer: LogBuffer) -> LogBuffer:
    root_logger = get_logger()
    if buffer not in root_logger.handlers:
        root_logger.addHandler(buffer)
    return buffer


def detach_log_buffer(buffer: LogBuffer) -> None:
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if buffer in root_logger.handlers:
        root_logger.removeHandler(buffer)


def shutdown_logging() -> None:
    """Shutdown logging and close all file handlers to release file locks."""
    global _logger_instance
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    _logger_instance = None
