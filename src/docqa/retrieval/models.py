"""Domain models for the vector index and retrieval results."""

from __future__ import annotations

import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Namespace for deterministic point ids; never change it or re-indexing
# stops overwriting previously written points.
POINT_ID_NAMESPACE = uuid.UUID("6f1c2a9e-3b1d-4c55-9a44-2d7e1b0c8f31")


def point_id(document_id: str, chunk_index: int) -> str:
    """Deterministic id of chunk *chunk_index* of *document_id*.

    The same chunk of the same document always maps to the same id, so a
    redelivered or resubmitted job overwrites its earlier points. Distinct
    documents never collide (UUIDv5 over the pair).
    """
    return str(uuid.uuid5(POINT_ID_NAMESPACE, f"{document_id}:{chunk_index}"))


class DistanceMetric(str, Enum):
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    DOT = "dot"


class CollectionInfo(BaseModel):
    """Name, vector size and metric of a collection."""

    model_config = ConfigDict(frozen=True)

    name: str
    dimension: int = Field(ge=1)
    metric: DistanceMetric = DistanceMetric.COSINE


class ChunkPayload(BaseModel):
    """What is stored next to each vector.

    Attributes
    ----------
    text:
        The chunk text, returned verbatim as query context.
    source:
        Location of the document the chunk came from.
    document_id:
        Stable identifier of that document.
    chunk_index:
        Ordinal position of the chunk within the document.
    start_index:
        Character offset of the chunk in the extracted text.
    page:
        1-based page number, for paged formats.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    source: str
    document_id: str
    chunk_index: int
    start_index: int = 0
    page: int | None = None

    def to_metadata(self) -> dict[str, str | int]:
        """Flat metadata (no ``None``, no text) for backends like Chroma."""
        return self.model_dump(exclude={"text"}, exclude_none=True)

    @classmethod
    def from_metadata(cls, text: str, metadata: dict) -> ChunkPayload:
        return cls(
            text=text,
            source=str(metadata.get("source", "unknown")),
            document_id=str(metadata.get("document_id", "")),
            chunk_index=int(metadata.get("chunk_index", 0)),
            start_index=int(metadata.get("start_index", 0)),
            page=metadata.get("page"),
        )


class IndexPoint(BaseModel):
    """One persisted (id, vector, payload) triple."""

    model_config = ConfigDict(frozen=True)

    id: str
    vector: list[float]
    payload: ChunkPayload


class ScoredPoint(BaseModel):
    """A search hit; higher ``score`` means more similar."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float
    payload: ChunkPayload


class UpsertResult(BaseModel):
    """Outcome of an upsert call; ``failed`` maps point id to reason.

    ``rejected_ids`` is the subset of ``failed`` the backend refused for good
    (bad vector, invalid request); writing those again cannot succeed.
    """

    upserted_ids: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    rejected_ids: set[str] = Field(default_factory=set)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def retryable(self) -> bool:
        return not self.rejected_ids


class RetrievedChunk(BaseModel):
    """A retrieved passage handed to the prompt builder."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    source: str
    chunk_index: int
    page: int | None = None
    score: float

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        return f"[{self.source}§{self.chunk_index}]"
