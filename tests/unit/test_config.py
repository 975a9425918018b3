"""Unit tests for configuration."""

from __future__ import annotations

import pydantic
import pytest

from docqa.config import PipelineConfig, Settings


def test_defaults_match_ingestion_worker() -> None:
    config = PipelineConfig()
    assert (config.chunk_size, config.chunk_overlap) == (500, 50)
    assert config.collection_name == "pdf_chunks"
    assert config.distance_metric == "cosine"
    assert config.chunk_step == 450


@pytest.mark.parametrize(("size", "overlap"), [(100, 100), (100, 150), (0, 0)])
def test_invalid_chunking_rejected(size: int, overlap: int) -> None:
    with pytest.raises(pydantic.ValidationError):
        PipelineConfig(chunk_size=size, chunk_overlap=overlap)


def test_config_is_immutable() -> None:
    config = PipelineConfig()
    with pytest.raises(pydantic.ValidationError):
        config.top_k = 10


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "800")
    monkeypatch.setenv("CHUNK_OVERLAP", "100")
    monkeypatch.setenv("RETRIEVAL_TOP_K", "3")
    monkeypatch.setenv("JOB_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("EMBEDDING_PROVIDER", "openai")
    monkeypatch.setenv("EMBEDDING_MODEL", "text-embedding-3-small")

    config = Settings(_env_file=None).pipeline_config()

    assert (config.chunk_size, config.chunk_overlap) == (800, 100)
    assert config.top_k == 3
    assert config.max_attempts == 5
    assert config.embedding_provider == "openai"
    assert config.embedding_model == "text-embedding-3-small"


def test_settings_reject_bad_overlap(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHUNK_OVERLAP", "500")
    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None).pipeline_config()
