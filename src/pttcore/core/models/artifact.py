from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple


class ArtifactStatus(str, Enum):
    NOT_STARTED = "not_started"
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    READY = "ready"
    FAILED = "failed"


IN_FLIGHT = (ArtifactStatus.QUEUED, ArtifactStatus.DOWNLOADING)


@dataclass
class DownloadableArtifact:
    id: str
    name: str
    total_bytes: int = 0
    downloaded_bytes: int = 0
    status: ArtifactStatus = ArtifactStatus.NOT_STARTED
    speed_bytes_per_sec: float = 0.0
    eta_seconds: int = 0
    active: bool = False

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("artifact id must be a non-empty string")
        if self.total_bytes < 0:
            raise ValueError("total_bytes must be >= 0")
        if not 0 <= self.downloaded_bytes <= self.total_bytes:
            raise ValueError("downloaded_bytes must be within 0..total_bytes")
        if self.speed_bytes_per_sec < 0:
            raise ValueError("speed_bytes_per_sec must be >= 0")
        if self.eta_seconds < 0:
            raise ValueError("eta_seconds must be >= 0")
        self.status = ArtifactStatus(self.status)
        if not self.name:
            self.name = self.id

    @property
    def remaining_bytes(self) -> int:
        return self.total_bytes - self.downloaded_bytes

    def copy(self) -> "DownloadableArtifact":
        return replace(self)

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "total_bytes": self.total_bytes,
            "downloaded_bytes": self.downloaded_bytes,
            "eta_seconds": self.eta_seconds,
            "speed_bytes_per_sec": self.speed_bytes_per_sec,
            "active": self.active,
        }


@dataclass(frozen=True)
class QueueSnapshot:
    models: Tuple[DownloadableArtifact, ...] = field(default_factory=tuple)
    active_model: Optional[str] = None
    queue_count: int = 0

    @classmethod
    def from_models(
        cls, models: List[DownloadableArtifact], active_model: Optional[str] = None
    ) -> "QueueSnapshot":
        if active_model is None:
            active_model = next((m.id for m in models if m.active), None)
        return cls(
            models=tuple(m.copy() for m in models),
            active_model=active_model,
            queue_count=sum(1 for m in models if m.status in IN_FLIGHT),
        )

    def get(self, artifact_id: str) -> Optional[DownloadableArtifact]:
        return next((m for m in self.models if m.id == artifact_id), None)

    @property
    def downloading(self) -> List[DownloadableArtifact]:
        return [m for m in self.models if m.status is ArtifactStatus.DOWNLOADING]

    def to_wire(self) -> dict:
        return {
            "models": [m.to_wire() for m in self.models],
            "active_model": self.active_model,
            "queue_count": self.queue_count,
        }
