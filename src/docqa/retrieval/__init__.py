"""
Retrieval — the vector index and semantic search over it.

This module wraps the vector store behind a clean interface so that the
ingestion pipeline and query service never need to know which database is
backing the index.

Public surface
--------------
- :class:`VectorIndexBase` — abstract backend with atomic ``ensure_collection``.
- :class:`InMemoryVectorIndex` — process-local backend.
- :class:`ChromaVectorIndex` — Chroma backend.
- :class:`SemanticRetriever` — question → ranked :class:`RetrievedChunk` list.
"""

from docqa.retrieval.base import VectorIndexBase
from docqa.retrieval.memory_store import InMemoryVectorIndex
from docqa.retrieval.models import (
    ChunkPayload,
    CollectionInfo,
    DistanceMetric,
    IndexPoint,
    RetrievedChunk,
    ScoredPoint,
    UpsertResult,
    point_id,
)
from docqa.retrieval.retriever import SemanticRetriever

__all__ = [
    "ChromaVectorIndex",
    "ChunkPayload",
    "CollectionInfo",
    "DistanceMetric",
    "InMemoryVectorIndex",
    "IndexPoint",
    "RetrievedChunk",
    "ScoredPoint",
    "SemanticRetriever",
    "UpsertResult",
    "VectorIndexBase",
    "point_id",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorIndex to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorIndex":
        from docqa.retrieval.chroma_store import ChromaVectorIndex

        return ChromaVectorIndex
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
