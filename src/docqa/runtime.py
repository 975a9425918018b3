"""Process-scoped resources, built once at start-up and passed down explicitly."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial

from docqa.config import PipelineConfig, Settings
from docqa.ingestion.embedder import EmbeddingAdapter
from docqa.ingestion.loader import load_document
from docqa.jobs.pipeline import IngestionPipeline, Loader
from docqa.jobs.queue import InMemoryJobQueue, JobQueue
from docqa.jobs.worker import WorkerPool
from docqa.query.llm import ChatModel
from docqa.query.service import QueryService
from docqa.retrieval.base import VectorIndexBase
from docqa.retrieval.memory_store import InMemoryVectorIndex
from docqa.retrieval.retriever import SemanticRetriever

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything the submission and query boundaries need."""

    config: PipelineConfig
    queue: JobQueue
    index: VectorIndexBase
    embedder: EmbeddingAdapter
    workers: WorkerPool
    query_service: QueryService


def build_index(settings: Settings, config: PipelineConfig) -> VectorIndexBase:
    if settings.vector_store == "memory":
        return InMemoryVectorIndex()

    from docqa.retrieval.chroma_store import ChromaVectorIndex

    return ChromaVectorIndex.connect(
        settings.chroma_host,
        settings.chroma_port,
        upsert_batch_size=config.upsert_batch_size,
    )


def assemble(
    config: PipelineConfig,
    *,
    index: VectorIndexBase,
    embedder: EmbeddingAdapter,
    chat: ChatModel,
    queue: JobQueue | None = None,
    loader: Loader = load_document,
    worker_count: int = 2,
    poll_interval: float = 1.0,
) -> Runtime:
    """Wire components together around one shared index and embedder.

    Ingestion and query receive the *same* ``embedder`` instance so both
    sides of the index live in one embedding space.
    """
    queue = queue or InMemoryJobQueue()
    pipeline = IngestionPipeline(config, index, embedder, loader)
    retriever = SemanticRetriever(index, embedder, config.collection_name, default_k=config.top_k)
    return Runtime(
        config=config,
        queue=queue,
        index=index,
        embedder=embedder,
        workers=WorkerPool(queue, pipeline, worker_count, poll_interval=poll_interval),
        query_service=QueryService(config, retriever, chat),
    )


def build_runtime(settings: Settings) -> Runtime:
    """Build the production runtime from *settings*."""
    config = settings.pipeline_config()
    logger.info(
        "Building runtime: store=%s collection=%s embedding=%s/%s",
        settings.vector_store,
        config.collection_name,
        config.embedding_provider,
        config.embedding_model,
    )
    return assemble(
        config,
        index=build_index(settings, config),
        embedder=EmbeddingAdapter.from_config(config, settings),
        chat=ChatModel.from_settings(settings),
        queue=InMemoryJobQueue(lease_seconds=settings.job_lease_seconds),
        loader=partial(load_document, max_bytes=settings.max_document_bytes),
        worker_count=settings.worker_count,
    )
