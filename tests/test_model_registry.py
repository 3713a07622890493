"""Tests for the model catalog."""

import json

from pttcore.core.models import ArtifactStatus
from pttcore.core.models.registry import (
    AVAILABLE_MODELS,
    ModelInfo,
    catalog_artifacts,
    get_model_by_id,
    load_models,
)


class TestModelRegistry:
    def test_catalog_loaded(self):
        ids = [model.id for model in AVAILABLE_MODELS]
        assert ids == ["tiny", "base", "small", "medium", "large"]

    def test_sizes_are_positive(self):
        assert all(model.size_bytes > 0 for model in AVAILABLE_MODELS)

    def test_get_model_by_id(self):
        model = get_model_by_id("base")
        assert model.name == "Whisper Base"
        assert model.url.endswith("/ggml-base.bin")

    def test_get_unknown_model(self):
        assert get_model_by_id("huge") is None

    def test_catalog_artifacts_not_started(self):
        artifacts = catalog_artifacts()
        assert len(artifacts) == len(AVAILABLE_MODELS)
        assert all(a.status is ArtifactStatus.NOT_STARTED for a in artifacts)
        assert artifacts[0].total_bytes == AVAILABLE_MODELS[0].size_bytes
        assert artifacts[0].downloaded_bytes == 0

    def test_catalog_from_custom_list(self):
        models = [ModelInfo(id="x", name="X", filename="x.bin", size_bytes=5)]
        (artifact,) = catalog_artifacts(models)
        assert artifact.id == "x"
        assert artifact.total_bytes == 5

    def test_load_models_custom_path(self, tmp_path):
        path = tmp_path / "models.json"
        path.write_text(
            json.dumps([{"id": "q", "name": "Q", "filename": "q.bin", "size_bytes": 1}])
        )
        assert load_models(str(path)) == [
            ModelInfo(id="q", name="Q", filename="q.bin", size_bytes=1)
        ]

    def test_load_models_bad_file(self, tmp_path):
        path = tmp_path / "models.json"
        path.write_text("{broken")
        assert load_models(str(path)) == []

    def test_load_models_missing_file(self, tmp_path):
        assert load_models(str(tmp_path / "nope.json")) == []
