"""
Model download queue.

Keeps the ordered registry of downloadable model artifacts, runs at most one
transfer at a time, and estimates progress from a periodic tick. The bytes
themselves are moved by an external collaborator; this class only decides
what is downloading, how far along it is, and what comes next.
"""

import math
import threading
from collections import OrderedDict, deque
from typing import TYPE_CHECKING, Deque, Iterable, Optional

from ...errors import InvalidArgument, InvalidState, NotFound
from ...utils.logger import get_logger
from ..settings.config import DEFAULT_SPEED_BYTES_PER_SEC, THROUGHPUT_SMOOTHING
from .artifact import IN_FLIGHT, ArtifactStatus, DownloadableArtifact, QueueSnapshot

if TYPE_CHECKING:
    from ..bridge.events import EventBus

logger = get_logger(__name__)


class ThroughputEstimator:
    """Exponentially weighted average of observed transfer throughput."""

    def __init__(
        self,
        initial: float = DEFAULT_SPEED_BYTES_PER_SEC,
        smoothing: float = THROUGHPUT_SMOOTHING,
    ):
        if not 0 < smoothing <= 1:
            raise ValueError("smoothing must be in (0, 1]")
        self._estimate = max(0.0, float(initial))
        self._smoothing = smoothing
        self._samples = 0

    @property
    def estimate(self) -> float:
        return self._estimate

    @property
    def samples(self) -> int:
        return self._samples

    def observe(self, transferred_bytes: float, seconds: float) -> float:
        if transferred_bytes <= 0 or seconds <= 0:
            return self._estimate
        observed = transferred_bytes / seconds
        if self._samples == 0:
            self._estimate = observed
        else:
            self._estimate = (
                self._smoothing * observed + (1 - self._smoothing) * self._estimate
            )
        self._samples += 1
        return self._estimate


class DownloadQueueManager:
    """
    Single-writer owner of the download queue.

    Invariants held under the queue lock:
        - at most one artifact is DOWNLOADING
        - at most one artifact is active
        - downloaded_bytes never decreases and never exceeds total_bytes
        - QUEUED artifacts are promoted in admission order
    """

    def __init__(
        self,
        bus: Optional["EventBus"] = None,
        estimator: Optional[ThroughputEstimator] = None,
    ):
        self._lock = threading.RLock()
        self._bus = bus
        self._estimator = estimator or ThroughputEstimator()
        self._artifacts: "OrderedDict[str, DownloadableArtifact]" = OrderedDict()
        self._pending: Deque[str] = deque()
        self._carry = 0.0
        self._transfer_bytes = 0
        self._transfer_seconds = 0.0

    @property
    def estimator(self) -> ThroughputEstimator:
        return self._estimator

    def register(self, artifact: DownloadableArtifact) -> DownloadableArtifact:
        """Add a catalog artifact as NOT_STARTED; known ids are left untouched."""
        with self._lock:
            item, added = self._register(artifact)
            if added:
                self._publish()
            return item.copy()

    def register_all(self, artifacts: Iterable[DownloadableArtifact]) -> QueueSnapshot:
        with self._lock:
            added = [self._register(artifact)[1] for artifact in artifacts]
            if any(added):
                self._publish()
            return self.snapshot()

    def enqueue(self, artifact: DownloadableArtifact) -> DownloadableArtifact:
        with self._lock:
            item = self._artifacts.get(artifact.id)
            if item is None:
                item = artifact.copy()
                item.active = False
                item.eta_seconds = 0
                self._artifacts[item.id] = item
                self._admit(item)
            elif item.status is ArtifactStatus.NOT_STARTED:
                if artifact.speed_bytes_per_sec > 0:
                    item.speed_bytes_per_sec = artifact.speed_bytes_per_sec
                self._admit(item)
            else:
                logger.debug(f"Enqueue ignored for {item.id} ({item.status.value})")
                return item.copy()

            if self._current() is None:
                self._promote_next()
            self._publish()
            return item.copy()

    def request_download(self, artifact_id: str) -> DownloadableArtifact:
        with self._lock:
            item = self._get(artifact_id)
            if item.status is ArtifactStatus.NOT_STARTED:
                return self.enqueue(item)
            if item.status is ArtifactStatus.FAILED:
                return self.retry(artifact_id)
            logger.debug(f"Download already requested for {artifact_id} ({item.status.value})")
            return item.copy()

    def tick(self, elapsed_seconds: float) -> QueueSnapshot:
        elapsed = self._validate_elapsed(elapsed_seconds)
        with self._lock:
            current = self._current()
            if current is None or elapsed == 0:
                return self.snapshot()
            if self._advance(current, elapsed):
                self._publish()
            return self.snapshot()

    def fail(self, artifact_id: str, message: str = "") -> DownloadableArtifact:
        with self._lock:
            item = self._get(artifact_id)
            if item.status not in IN_FLIGHT:
                raise InvalidState(
                    f"Cannot fail {artifact_id} while {item.status.value}",
                    details={"model_id": artifact_id, "status": item.status.value},
                )
            was_downloading = item.status is ArtifactStatus.DOWNLOADING
            if item.id in self._pending:
                self._pending.remove(item.id)
            item.status = ArtifactStatus.FAILED
            item.speed_bytes_per_sec = 0.0
            item.eta_seconds = 0
            logger.warning(f"Model download failed: {item.name}: {message or 'no reason given'}")
            if was_downloading:
                self._promote_next()
            self._publish()
            return item.copy()

    def select(self, artifact_id: str) -> DownloadableArtifact:
        with self._lock:
            target = self._get(artifact_id)
            for item in self._artifacts.values():
                item.active = item is target
            logger.info(f"Active model: {target.id}")
            self._publish()
            return target.copy()

    def retry(self, artifact_id: str) -> DownloadableArtifact:
        with self._lock:
            item = self._get(artifact_id)
            if item.status is not ArtifactStatus.FAILED:
                raise InvalidState(
                    f"Cannot retry {artifact_id} while {item.status.value}",
                    details={"model_id": artifact_id, "status": item.status.value},
                )
            self._admit(item)
            if self._current() is None:
                self._promote_next()
            self._publish()
            return item.copy()

    def get(self, artifact_id: str) -> Optional[DownloadableArtifact]:
        with self._lock:
            item = self._artifacts.get(artifact_id)
            return item.copy() if item is not None else None

    def snapshot(self) -> QueueSnapshot:
        with self._lock:
            return QueueSnapshot.from_models(list(self._artifacts.values()))

    def _get(self, artifact_id: str) -> DownloadableArtifact:
        item = self._artifacts.get(artifact_id) if isinstance(artifact_id, str) else None
        if item is None:
            raise NotFound(f"Unknown model: {artifact_id}", details={"model_id": artifact_id})
        return item

    def _register(self, artifact: DownloadableArtifact):
        existing = self._artifacts.get(artifact.id)
        if existing is not None:
            return existing, False
        item = artifact.copy()
        item.status = ArtifactStatus.NOT_STARTED
        item.speed_bytes_per_sec = 0.0
        item.eta_seconds = 0
        item.active = False
        self._artifacts[item.id] = item
        return item, True

    def _current(self) -> Optional[DownloadableArtifact]:
        for item in self._artifacts.values():
            if item.status is ArtifactStatus.DOWNLOADING:
                return item
        return None

    def _admit(self, item: DownloadableArtifact) -> None:
        item.status = ArtifactStatus.QUEUED
        self._pending.append(item.id)
        logger.info(f"Queued model download: {item.name}")

    def _promote_next(self) -> Optional[DownloadableArtifact]:
        while self._pending:
            item = self._artifacts.get(self._pending.popleft())
            if item is None or item.status is not ArtifactStatus.QUEUED:
                continue

            if item.remaining_bytes <= 0:
                self._mark_ready(item)
                continue

            item.status = ArtifactStatus.DOWNLOADING
            if item.speed_bytes_per_sec <= 0:
                item.speed_bytes_per_sec = self._estimator.estimate
            item.eta_seconds = self._eta(item)
            self._carry = 0.0
            self._transfer_bytes = 0
            self._transfer_seconds = 0.0
            logger.info(
                f"Downloading {item.name}: {item.remaining_bytes} bytes at "
                f"{item.speed_bytes_per_sec:.0f} B/s"
            )
            return item
        return None

    def _advance(self, item: DownloadableArtifact, elapsed: float) -> bool:
        speed = item.speed_bytes_per_sec
        remaining = item.remaining_bytes

        if remaining <= 0:
            self._complete(item)
            return True
        if speed <= 0:
            item.eta_seconds = 0
            return False

        elapsed = min(elapsed, remaining / speed)
        progress = min(speed * elapsed + self._carry, remaining)
        step = remaining if progress >= remaining else int(progress)
        self._carry = progress - step if step < remaining else 0.0

        item.downloaded_bytes += step
        self._transfer_bytes += step
        self._transfer_seconds += elapsed
        logger.debug(f"Tick {item.id}: {item.downloaded_bytes}/{item.total_bytes}")

        if item.remaining_bytes <= 0:
            self._complete(item)
            return True

        eta = self._eta(item)
        changed = step > 0 or eta != item.eta_seconds
        item.eta_seconds = eta
        return changed

    def _complete(self, item: DownloadableArtifact) -> None:
        self._estimator.observe(self._transfer_bytes, self._transfer_seconds)
        self._mark_ready(item)
        self._promote_next()

    def _mark_ready(self, item: DownloadableArtifact) -> None:
        item.downloaded_bytes = item.total_bytes
        item.status = ArtifactStatus.READY
        item.speed_bytes_per_sec = 0.0
        item.eta_seconds = 0
        logger.info(f"{item.name} installed")

    @staticmethod
    def _eta(item: DownloadableArtifact) -> int:
        if item.speed_bytes_per_sec <= 0:
            return 0
        return math.ceil(item.remaining_bytes / item.speed_bytes_per_sec)

    @staticmethod
    def _validate_elapsed(elapsed_seconds) -> float:
        try:
            elapsed = float(elapsed_seconds)
        except (TypeError, ValueError):
            raise InvalidArgument(f"elapsed_seconds must be a number, got {elapsed_seconds!r}")
        if not math.isfinite(elapsed) or elapsed < 0:
            raise InvalidArgument(
                f"elapsed_seconds must be finite and >= 0, got {elapsed_seconds!r}"
            )
        return elapsed

    def _publish(self) -> None:
        if self._bus is not None:
            from ..bridge.events import MODEL_STATUS_EVENT

            self._bus.publish(MODEL_STATUS_EVENT, self.snapshot().to_wire())
