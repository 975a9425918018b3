"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import DIMENSION, HashEmbeddings, ScriptedChat

from docqa.config import PipelineConfig
from docqa.ingestion.embedder import EmbeddingAdapter
from docqa.retrieval.memory_store import InMemoryVectorIndex


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


@pytest.fixture()
def config() -> PipelineConfig:
    return PipelineConfig(
        chunk_size=40,
        chunk_overlap=10,
        collection_name="test_chunks",
        embedding_model="fake",
        embedding_batch_size=4,
        embedding_concurrency=2,
        max_attempts=3,
        retry_backoff_seconds=0.0,
        retry_backoff_max_seconds=0.0,
    )


@pytest.fixture()
def embedder() -> EmbeddingAdapter:
    return EmbeddingAdapter(HashEmbeddings(), "fake", batch_size=4, concurrency=2)


@pytest.fixture()
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture()
def chat() -> ScriptedChat:
    return ScriptedChat()


@pytest.fixture()
def sample_text() -> str:
    return (
        "Invoices are payable within thirty days of receipt. "
        "Late payments accrue interest at two percent per month. "
        "Either party may terminate the agreement with ninety days notice. "
        "The supplier warrants the goods for twelve months."
    )


@pytest.fixture()
def document_path(tmp_path: Path, sample_text: str) -> Path:
    path = tmp_path / "contract.txt"
    path.write_text(sample_text, encoding="utf-8")
    return path
