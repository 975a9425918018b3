"""Abstract base class for vector-index backends.

Adding a new backend (Qdrant, pgvector, ...) only requires subclassing
:class:`VectorIndexBase` and implementing the abstract methods. Collection
setup, including the check-then-create race, is handled here once for all
backends.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

from docqa.errors import ConfigurationConflictError
from docqa.retrieval.models import (
    CollectionInfo,
    DistanceMetric,
    IndexPoint,
    ScoredPoint,
    UpsertResult,
)

logger = logging.getLogger(__name__)


class VectorIndexBase(ABC):
    """Backend-agnostic vector-index interface."""

    def __init__(self) -> None:
        self._locks_guard = threading.Lock()
        self._collection_locks: dict[str, threading.Lock] = {}

    # -- collection setup -----------------------------------------------------

    def ensure_collection(
        self,
        name: str,
        dimension: int,
        metric: DistanceMetric | str = DistanceMetric.COSINE,
    ) -> CollectionInfo:
        """Create collection *name* unless it already exists.

        The existence check and the creation run under a per-name lock, so
        concurrent first-use by several workers creates the collection once.
        Backends whose ``_create_collection`` is itself idempotent on the
        server side (Chroma's ``get_or_create``) are also safe across
        processes.

        Raises
        ------
        ConfigurationConflictError
            The collection exists with a different dimension or metric. The
            existing collection is left untouched.
        """
        requested = CollectionInfo(name=name, dimension=dimension, metric=DistanceMetric(metric))
        with self._lock_for(name):
            existing = self._get_collection(name)
            if existing is None:
                existing = self._create_collection(requested)
                logger.info(
                    "Created collection %r (dimension=%d, metric=%s)",
                    name,
                    existing.dimension,
                    existing.metric.value,
                )
            else:
                logger.debug("Collection %r exists", name)

        # The backend may have raced us from another process; re-check.
        if existing.dimension != requested.dimension:
            raise ConfigurationConflictError(name, existing.dimension, requested.dimension)
        if existing.metric != requested.metric:
            raise ConfigurationConflictError(
                name, existing.metric.value, requested.metric.value, field="metric"
            )
        return existing

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._collection_locks.setdefault(name, threading.Lock())

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def _get_collection(self, name: str) -> CollectionInfo | None:
        """Return the stored configuration of *name*, or ``None``."""
        ...

    @abstractmethod
    def _create_collection(self, info: CollectionInfo) -> CollectionInfo:
        """Create the collection; return what the backend actually holds."""
        ...

    @abstractmethod
    def upsert(self, collection_name: str, points: list[IndexPoint]) -> UpsertResult:
        """Write or overwrite *points* by id.

        Not all-or-nothing: ids that could not be written are reported in
        :attr:`UpsertResult.failed` instead of raising.
        """
        ...

    @abstractmethod
    def search(
        self,
        collection_name: str,
        query_vector: list[float],
        top_k: int = 5,
    ) -> list[ScoredPoint]:
        """Return up to *top_k* points by descending similarity."""
        ...

    @abstractmethod
    def count(self, collection_name: str, source: str | None = None) -> int:
        """Number of points in the collection, optionally for one source."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    def get_collection(self, name: str) -> CollectionInfo | None:
        """Public read-only view of a collection's configuration."""
        return self._get_collection(name)
