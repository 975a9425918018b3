"""Chroma implementation of the vector-index abstraction."""

from __future__ import annotations

import logging
from typing import Any

import chromadb

from docqa.errors import DocQAError, NotFoundError, classify_dependency_error
from docqa.retrieval.base import VectorIndexBase
from docqa.retrieval.models import (
    ChunkPayload,
    CollectionInfo,
    DistanceMetric,
    IndexPoint,
    ScoredPoint,
    UpsertResult,
)

logger = logging.getLogger(__name__)

_SPACE_BY_METRIC = {
    DistanceMetric.COSINE: "cosine",
    DistanceMetric.EUCLIDEAN: "l2",
    DistanceMetric.DOT: "ip",
}
_METRIC_BY_SPACE = {space: metric for metric, space in _SPACE_BY_METRIC.items()}


def distance_to_score(metric: DistanceMetric, distance: float) -> float:
    """Convert a Chroma distance into a similarity (higher = closer)."""
    if metric is DistanceMetric.EUCLIDEAN:
        return 1.0 / (1.0 + distance)
    # cosine: d = 1 - cos; ip: d = 1 - dot
    return 1.0 - distance


class ChromaVectorIndex(VectorIndexBase):
    """Chroma-backed vector index.

    Parameters
    ----------
    client:
        A ``chromadb`` client (``HttpClient`` in production,
        ``EphemeralClient`` in tests).
    upsert_batch_size:
        Max records per ``collection.upsert`` call.
    """

    def __init__(self, client: Any, *, upsert_batch_size: int = 500) -> None:
        super().__init__()
        self._client = client
        self._upsert_batch_size = upsert_batch_size

    @classmethod
    def connect(cls, host: str, port: int, **kwargs: Any) -> ChromaVectorIndex:
        """Build an index over ``chromadb.HttpClient(host, port)``."""
        return cls(chromadb.HttpClient(host=host, port=port), **kwargs)

    # -- collection setup -----------------------------------------------------

    def _find(self, name: str) -> Any | None:
        listed = self._call(self._client.list_collections)
        names = {c if isinstance(c, str) else c.name for c in listed}
        if name not in names:
            return None
        return self._call(lambda: self._client.get_collection(name))

    def _get_collection(self, name: str) -> CollectionInfo | None:
        collection = self._find(name)
        if collection is None:
            return None
        # None for an empty collection of unknown dimension: _create_collection
        # then adopts it with the requested dimension.
        return self._info(collection)

    def _create_collection(self, info: CollectionInfo) -> CollectionInfo:
        # get_or_create is idempotent server-side: if another process won
        # the race we get its collection back and ensure_collection compares.
        collection = self._call(
            lambda: self._client.get_or_create_collection(
                name=info.name,
                metadata={
                    "hnsw:space": _SPACE_BY_METRIC[info.metric],
                    "dimension": info.dimension,
                },
            )
        )
        return self._info(collection, default_dimension=info.dimension)

    @staticmethod
    def _metric(collection: Any) -> DistanceMetric:
        space = (collection.metadata or {}).get("hnsw:space", "l2")
        return _METRIC_BY_SPACE.get(space, DistanceMetric.EUCLIDEAN)

    def _info(self, collection: Any, default_dimension: int | None = None) -> CollectionInfo | None:
        dimension = (collection.metadata or {}).get("dimension")
        if dimension is None:
            # Created outside docqa: infer from a stored vector if there is one.
            peeked = self._call(lambda: collection.peek(1))
            embeddings = peeked.get("embeddings")
            if embeddings is not None and len(embeddings) > 0:
                dimension = len(embeddings[0])
            elif default_dimension is not None:
                dimension = default_dimension
            else:
                return None
        return CollectionInfo(name=collection.name, dimension=int(dimension), metric=self._metric(collection))

    def _open(self, name: str) -> tuple[Any, DistanceMetric]:
        collection = self._find(name)
        if collection is None:
            raise NotFoundError(f"Collection {name!r} does not exist", error_code="COLLECTION_NOT_FOUND")
        return collection, self._metric(collection)

    # -- VectorIndexBase overrides --------------------------------------------

    def upsert(self, collection_name: str, points: list[IndexPoint]) -> UpsertResult:
        collection, _ = self._open(collection_name)
        result = UpsertResult()

        for start in range(0, len(points), self._upsert_batch_size):
            batch = points[start : start + self._upsert_batch_size]
            try:
                collection.upsert(
                    ids=[p.id for p in batch],
                    embeddings=[p.vector for p in batch],
                    documents=[p.payload.text for p in batch],
                    metadatas=[p.payload.to_metadata() for p in batch],
                )
            except Exception as exc:
                error = classify_dependency_error(exc, "vector index")
                logger.warning(
                    "Upsert batch of %d point(s) into %r failed: %s",
                    len(batch),
                    collection_name,
                    error,
                )
                result.failed.update({p.id: str(error) for p in batch})
                if not error.retryable:
                    result.rejected_ids.update(p.id for p in batch)
                continue
            result.upserted_ids.extend(p.id for p in batch)

        logger.info(
            "Upserted %d point(s) into %r (%d failed)",
            len(result.upserted_ids),
            collection_name,
            len(result.failed),
        )
        return result

    def search(
        self,
        collection_name: str,
        query_vector: list[float],
        top_k: int = 5,
    ) -> list[ScoredPoint]:
        collection, metric = self._open(collection_name)
        total = self._call(collection.count)
        if total == 0 or top_k <= 0:
            return []

        results = self._call(
            lambda: collection.query(
                query_embeddings=[query_vector],
                n_results=min(top_k, total),
                include=["documents", "metadatas", "distances"],
            )
        )

        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        hits = [
            ScoredPoint(
                id=point_id,
                score=distance_to_score(metric, dist),
                payload=ChunkPayload.from_metadata(content or "", meta or {}),
            )
            for point_id, content, meta, dist in zip(ids, docs, metas, distances)
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits

    def count(self, collection_name: str, source: str | None = None) -> int:
        collection, _ = self._open(collection_name)
        if source is None:
            return self._call(collection.count)
        found = self._call(lambda: collection.get(where={"source": {"$eq": source}}, include=[]))
        return len(found.get("ids", []))

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    @staticmethod
    def _call(fn):  # noqa: ANN001, ANN205
        try:
            return fn()
        except DocQAError:
            raise
        except Exception as exc:
            raise classify_dependency_error(exc, "vector index") from exc
