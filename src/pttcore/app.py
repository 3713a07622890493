"""
Runtime wiring for the push-to-talk core.

Creates the owned state (capture state machine, download queue, settings),
connects them to the event bus and the command bridge, and drives the queue
tick and the global hotkey from the Qt event loop.
"""

import signal
import sys
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QCoreApplication, QObject

from . import __app_name__, __version__
from .core.bridge.client import SurfaceClient
from .core.bridge.commands import CommandBridge
from .core.bridge.events import EventBus
from .core.bridge.qt import QtEventRelay
from .core.input.hotkey import HotkeyListener
from .core.models.queue import DownloadQueueManager
from .core.models.registry import catalog_artifacts
from .core.models.ticker import DownloadTicker
from .core.ptt.machine import PttStateMachine
from .core.settings.config import LOG_BUFFER_CAPACITY
from .core.settings.settings import SettingsStore
from .errors import InvalidState
from .utils.logger import LogBuffer, attach_log_buffer, detach_log_buffer, get_logger

logger = get_logger(__name__)


class CoreRuntime(QObject):
    def __init__(
        self,
        config_file: Optional[Path] = None,
        persist_settings: bool = True,
        enable_hotkey: bool = True,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)

        self.bus = EventBus()
        self.log_buffer = attach_log_buffer(LogBuffer(LOG_BUFFER_CAPACITY, bus=self.bus))
        self.settings_store = SettingsStore(config_file, persist=persist_settings)
        self.machine = PttStateMachine(self.bus)
        self.queue = DownloadQueueManager(self.bus)
        self.queue.register_all(catalog_artifacts())

        self._enable_hotkey = enable_hotkey
        self.hotkey_listener = HotkeyListener(self.settings_store.settings.hotkey, parent=self)
        self.bridge = CommandBridge(
            self.machine,
            self.queue,
            self.settings_store,
            log_buffer=self.log_buffer,
            bus=self.bus,
            on_hotkey_changed=self.hotkey_listener.update_binding,
        )
        self.ticker = DownloadTicker(self.queue, parent=self)
        self.relay = QtEventRelay(self.bus, parent=self)

        self.hotkey_listener.triggered.connect(self._on_hotkey_triggered)

    def create_surface(self) -> SurfaceClient:
        client = SurfaceClient(self.bridge)
        client.attach()
        return client

    def run(self) -> None:
        logger.info(f"Starting {__app_name__} v{__version__}")
        self.ticker.start()
        if self._enable_hotkey:
            self.hotkey_listener.start()
        logger.info("Core initialization complete")

    def shutdown(self) -> None:
        logger.info("Shutting down core")
        self.ticker.stop()
        self.hotkey_listener.stop()
        self.relay.close()
        self.bridge.close()
        detach_log_buffer(self.log_buffer)

    def _on_hotkey_triggered(self) -> None:
        try:
            self.machine.toggle()
        except InvalidState as e:
            logger.warning(f"Hotkey ignored: {e}")


def main():
    app = QCoreApplication(sys.argv)
    app.setApplicationName(__app_name__)
    signal.signal(signal.SIGINT, lambda *args: QCoreApplication.quit())

    runtime = CoreRuntime()
    app.aboutToQuit.connect(runtime.shutdown)
    runtime.run()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
