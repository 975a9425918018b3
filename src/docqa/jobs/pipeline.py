"""Ingestion pipeline: load → chunk → embed → ensure collection → upsert.

One :class:`IngestionPipeline` is shared by every worker in the process. It
holds no per-job state, so concurrent ``run`` calls are safe as long as the
index and embedding adapter are (both bundled implementations are).
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from docqa.errors import DocumentDecodeError, PermanentDependencyError, UpsertError
from docqa.ingestion.chunker import chunk_document
from docqa.ingestion.loader import LoadedDocument, load_document
from docqa.jobs.models import IngestionJob, IngestionOutcome
from docqa.retrieval.models import ChunkPayload, IndexPoint, point_id
from docqa.retry import call_with_retry

if TYPE_CHECKING:
    from docqa.config import PipelineConfig
    from docqa.ingestion.chunker import Chunk
    from docqa.ingestion.embedder import EmbeddingAdapter
    from docqa.retrieval.base import VectorIndexBase

logger = logging.getLogger(__name__)

Loader = Callable[[str, str | None], LoadedDocument]


def location_document_id(location: str) -> str:
    """Identity of a document derived from where it was submitted.

    Redelivering or resubmitting the same location overwrites its points;
    identical files stored at different locations stay separate documents.
    """
    return hashlib.sha256(location.encode("utf-8")).hexdigest()


def build_points(chunks: list[Chunk], vectors: list[list[float]]) -> list[IndexPoint]:
    """Pair each chunk with its vector under a deterministic id."""
    return [
        IndexPoint(
            id=point_id(chunk.document_id, chunk.chunk_index),
            vector=vector,
            payload=ChunkPayload(
                text=chunk.text,
                source=chunk.source,
                document_id=chunk.document_id,
                chunk_index=chunk.chunk_index,
                start_index=chunk.start_index,
                page=chunk.page,
            ),
        )
        for chunk, vector in zip(chunks, vectors, strict=True)
    ]


class IngestionPipeline:
    """Turn one queued document into points in the vector index.

    Parameters
    ----------
    config:
        Shared pipeline configuration (chunking, collection, retry policy).
    index:
        Vector index the points are written to.
    embedder:
        Embedding adapter; the query service must use the same one.
    loader:
        ``(location, media_type) -> LoadedDocument``; defaults to
        :func:`~docqa.ingestion.loader.load_document`.
    """

    def __init__(
        self,
        config: PipelineConfig,
        index: VectorIndexBase,
        embedder: EmbeddingAdapter,
        loader: Loader = load_document,
    ) -> None:
        self._config = config
        self._index = index
        self._embedder = embedder
        self._loader = loader

    def run(self, job: IngestionJob) -> IngestionOutcome:
        """Execute *job*; raises a :class:`~docqa.errors.DocQAError` on failure.

        Transient failures are retried inside each step. Anything that
        escapes has either exhausted its retries or cannot succeed on retry.
        """
        config = self._config
        log_prefix = f"[job {job.job_id}]"

        document = call_with_retry(config, lambda: self._loader(job.location, job.media_type))
        document_id = job.document_id or location_document_id(job.location)

        chunks = chunk_document(document, document_id, config.chunk_size, config.chunk_overlap)
        if not chunks:
            raise DocumentDecodeError(
                f"No text could be extracted from {job.location}", error_code="DOCUMENT_EMPTY"
            )
        logger.info("%s %s split into %d chunk(s)", log_prefix, job.location, len(chunks))

        vectors = call_with_retry(config, lambda: self._embedder.embed_many([c.text for c in chunks]))
        dimension = len(vectors[0])
        logger.info("%s embedded %d chunk(s) (dim=%d)", log_prefix, len(vectors), dimension)

        call_with_retry(
            config,
            lambda: self._index.ensure_collection(
                config.collection_name, dimension, config.distance_metric
            ),
        )

        points = build_points(chunks, vectors)
        self._upsert_all(points, log_prefix)

        logger.info(
            "%s stored %d point(s) for document %s in %r",
            log_prefix,
            len(points),
            document_id[:12],
            config.collection_name,
        )
        return IngestionOutcome(
            document_id=document_id,
            chunk_count=len(points),
            point_ids=[p.id for p in points],
        )

    def _upsert_all(self, points: list[IndexPoint], log_prefix: str) -> None:
        """Upsert *points*, retrying only the ids that failed last time."""
        pending = list(points)

        def attempt() -> None:
            nonlocal pending
            result = self._index.upsert(self._config.collection_name, pending)
            if result.ok:
                return
            pending = [p for p in pending if p.id in result.failed]
            logger.warning("%s %d point(s) failed to upsert", log_prefix, len(pending))
            if not result.retryable:
                reason = result.failed.get(min(result.rejected_ids), "rejected")
                raise PermanentDependencyError(
                    f"{len(result.rejected_ids)} point(s) were rejected by the index: {reason}"
                )
            raise UpsertError(
                f"{len(pending)} point(s) were not written: {next(iter(result.failed.values()))}",
                failed_ids=sorted(result.failed),
            )

        call_with_retry(self._config, attempt)
