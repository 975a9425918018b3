"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings


class PipelineConfig(BaseModel):
    """Everything ingestion and query must agree on.

    One instance is built at process start and handed to the ingestion
    pipeline *and* the query service, so both sides always embed with the
    same model and talk to the same collection.
    """

    model_config = ConfigDict(frozen=True)

    # Embedding
    embedding_provider: Literal["huggingface", "openai"] = "huggingface"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int | None = Field(default=None, ge=1)
    embedding_batch_size: int = Field(default=64, ge=1)
    embedding_concurrency: int = Field(default=4, ge=1)

    # Chunking (characters)
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=50, ge=0)

    # Vector index
    collection_name: str = Field(default="pdf_chunks", min_length=1)
    distance_metric: Literal["cosine", "euclidean", "dot"] = "cosine"
    upsert_batch_size: int = Field(default=500, ge=1)

    # Query
    top_k: int = Field(default=5, ge=1)
    max_context_chars: int = Field(default=6000, ge=1)

    # Retry policy for transient dependency failures
    max_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0)
    retry_backoff_max_seconds: float = Field(default=30.0, ge=0.0)

    @model_validator(mode="after")
    def _check_overlap(self) -> PipelineConfig:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self

    @property
    def chunk_step(self) -> int:
        return self.chunk_size - self.chunk_overlap


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat API. Leave empty to use "
            "OpenAI cloud."
        ),
    )
    llm_temperature: float = 0.0
    llm_timeout_seconds: float = 60.0

    # Embedding
    embedding_provider: Literal["huggingface", "openai"] = "huggingface"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int | None = None
    embedding_batch_size: int = 64
    embedding_concurrency: int = 4
    embedding_timeout_seconds: float = 30.0

    # Vector store
    vector_store: Literal["chroma", "memory"] = "chroma"
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    collection_name: str = "pdf_chunks"
    distance_metric: Literal["cosine", "euclidean", "dot"] = "cosine"

    # Chunking
    chunk_size: int = 500
    chunk_overlap: int = 50

    # Query
    retrieval_top_k: int = 5
    max_context_chars: int = 6000

    # Jobs
    worker_count: int = 2
    job_max_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    retry_backoff_max_seconds: float = 30.0
    job_lease_seconds: float = 300.0

    # Submission guard
    max_document_bytes: int = 10 * 1024 * 1024
    allowed_media_types: list[str] = Field(
        default=["application/pdf", "text/plain", "text/markdown"]
    )

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def pipeline_config(self) -> PipelineConfig:
        """Build the :class:`PipelineConfig` shared by ingestion and query."""
        return PipelineConfig(
            embedding_provider=self.embedding_provider,
            embedding_model=self.embedding_model,
            embedding_dimension=self.embedding_dimension,
            embedding_batch_size=self.embedding_batch_size,
            embedding_concurrency=self.embedding_concurrency,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            collection_name=self.collection_name,
            distance_metric=self.distance_metric,
            top_k=self.retrieval_top_k,
            max_context_chars=self.max_context_chars,
            max_attempts=self.job_max_attempts,
            retry_backoff_seconds=self.retry_backoff_seconds,
            retry_backoff_max_seconds=self.retry_backoff_max_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings (read once)."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the worker / API process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
