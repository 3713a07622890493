import json
import os
from dataclasses import dataclass
from typing import List, Optional

from ...utils.logger import get_logger
from .artifact import ArtifactStatus, DownloadableArtifact

logger = get_logger(__name__)

WHISPER_RELEASE_BASE = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main"


@dataclass
class ModelInfo:
    id: str
    name: str
    filename: str
    size_bytes: int

    @property
    def url(self) -> str:
        return f"{WHISPER_RELEASE_BASE}/{self.filename}"

    def to_artifact(self) -> DownloadableArtifact:
        return DownloadableArtifact(
            id=self.id,
            name=self.name,
            total_bytes=self.size_bytes,
            status=ArtifactStatus.NOT_STARTED,
        )


def load_models(json_path: Optional[str] = None) -> List[ModelInfo]:
    if json_path is None:
        current_dir = os.path.dirname(os.path.abspath(__file__))
        json_path = os.path.join(current_dir, "models.json")
    try:
        with open(json_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return [ModelInfo(**item) for item in data]
    except (OSError, ValueError, TypeError) as e:
        logger.error(f"Error loading model catalog {json_path}: {e}")
        return []


AVAILABLE_MODELS: List[ModelInfo] = load_models()


def get_model_by_id(model_id: str) -> Optional[ModelInfo]:
    for model in AVAILABLE_MODELS:
        if model.id == model_id:
            return model
    return None


def catalog_artifacts(models: Optional[List[ModelInfo]] = None) -> List[DownloadableArtifact]:
    return [model.to_artifact() for model in (AVAILABLE_MODELS if models is None else models)]
