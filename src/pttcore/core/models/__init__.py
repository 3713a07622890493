from .artifact import ArtifactStatus, DownloadableArtifact, QueueSnapshot

__all__ = ["ArtifactStatus", "DownloadableArtifact", "QueueSnapshot"]
