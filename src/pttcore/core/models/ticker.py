"""
Periodic driver for the download queue.

A QTimer in the Qt event loop measures wall-clock time between timeouts and
feeds it to ``DownloadQueueManager.tick``. Ticks are serialized with commands
by the queue lock.
"""

import time
from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal

from ...utils.logger import get_logger
from ..settings.config import TICK_INTERVAL_MS
from .queue import DownloadQueueManager

logger = get_logger(__name__)


class DownloadTicker(QObject):
    """
    Signals:
        ticked: Emitted after each tick with the resulting snapshot
    """

    ticked = Signal(object)  # QueueSnapshot

    def __init__(
        self,
        queue: DownloadQueueManager,
        interval_ms: int = TICK_INTERVAL_MS,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._queue = queue
        self._last_tick: Optional[float] = None
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._on_timeout)

    @property
    def is_running(self) -> bool:
        return self._timer.isActive()

    def start(self) -> None:
        if self._timer.isActive():
            return
        self._last_tick = time.monotonic()
        self._timer.start()
        logger.info(f"Download ticker started ({self._timer.interval()} ms)")

    def stop(self) -> None:
        if not self._timer.isActive():
            return
        self._timer.stop()
        self._last_tick = None
        logger.info("Download ticker stopped")

    def _on_timeout(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_tick if self._last_tick is not None else 0.0
        self._last_tick = now
        snapshot = self._queue.tick(max(0.0, elapsed))
        self.ticked.emit(snapshot)
