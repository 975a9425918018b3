"""In-process vector index backed by numpy arrays.

Used by the test-suite and for single-process deployments that do not need
persistence. Thread-safe: every worker and the query path share one instance.
"""

from __future__ import annotations

import logging
import threading

import numpy as np

from docqa.errors import ConfigurationConflictError, NotFoundError
from docqa.retrieval.base import VectorIndexBase
from docqa.retrieval.models import (
    CollectionInfo,
    DistanceMetric,
    IndexPoint,
    ScoredPoint,
    UpsertResult,
)

logger = logging.getLogger(__name__)


def similarity(metric: DistanceMetric, matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Score every row of *matrix* against *query*; higher is more similar."""
    if metric is DistanceMetric.DOT:
        return matrix @ query
    if metric is DistanceMetric.EUCLIDEAN:
        return 1.0 / (1.0 + np.linalg.norm(matrix - query, axis=1))
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    norms[norms == 0] = 1.0
    return (matrix @ query) / norms


class _Collection:
    def __init__(self, info: CollectionInfo) -> None:
        self.info = info
        self.points: dict[str, IndexPoint] = {}


class InMemoryVectorIndex(VectorIndexBase):
    """Dictionary-of-collections implementation of :class:`VectorIndexBase`."""

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, _Collection] = {}
        self._data_lock = threading.RLock()

    def _get_collection(self, name: str) -> CollectionInfo | None:
        with self._data_lock:
            collection = self._collections.get(name)
            return collection.info if collection else None

    def _create_collection(self, info: CollectionInfo) -> CollectionInfo:
        with self._data_lock:
            collection = self._collections.setdefault(info.name, _Collection(info))
            return collection.info

    def _require(self, name: str) -> _Collection:
        collection = self._collections.get(name)
        if collection is None:
            raise NotFoundError(f"Collection {name!r} does not exist", error_code="COLLECTION_NOT_FOUND")
        return collection

    def upsert(self, collection_name: str, points: list[IndexPoint]) -> UpsertResult:
        result = UpsertResult()
        with self._data_lock:
            collection = self._require(collection_name)
            for point in points:
                if len(point.vector) != collection.info.dimension:
                    result.failed[point.id] = (
                        f"vector has {len(point.vector)} dimensions, "
                        f"collection expects {collection.info.dimension}"
                    )
                    result.rejected_ids.add(point.id)
                    continue
                collection.points[point.id] = point
                result.upserted_ids.append(point.id)
        logger.debug(
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
        with self._data_lock:
            collection = self._require(collection_name)
            points = list(collection.points.values())
            metric = collection.info.metric
            dimension = collection.info.dimension
        if len(query_vector) != dimension:
            raise ConfigurationConflictError(collection_name, dimension, len(query_vector))
        if not points or top_k <= 0:
            return []

        matrix = np.asarray([p.vector for p in points], dtype=float)
        scores = similarity(metric, matrix, np.asarray(query_vector, dtype=float))
        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            ScoredPoint(id=points[i].id, score=float(scores[i]), payload=points[i].payload)
            for i in order
        ]

    def count(self, collection_name: str, source: str | None = None) -> int:
        with self._data_lock:
            collection = self._require(collection_name)
            if source is None:
                return len(collection.points)
            return sum(1 for p in collection.points.values() if p.payload.source == source)

    def health_check(self) -> bool:
        return True
