"""Semantic retriever: embed a question and look it up in the index.

Usage::

    retriever = SemanticRetriever(index, embedder, collection_name="pdf_chunks")
    for chunk in retriever.search("What does clause 4 cover?", k=5):
        print(chunk.short_ref(), chunk.text[:80])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from docqa.retrieval.models import RetrievedChunk, ScoredPoint

if TYPE_CHECKING:
    from docqa.ingestion.embedder import EmbeddingAdapter
    from docqa.retrieval.base import VectorIndexBase

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """High-level retriever over any :class:`VectorIndexBase`.

    Parameters
    ----------
    index:
        A concrete vector-index backend.
    embedder:
        The adapter used at ingestion time. Querying with a different
        embedding model returns meaningless neighbours without any error.
    collection_name:
        Collection to search.
    default_k:
        How many chunks :meth:`search` returns when *k* is not given.
    score_threshold:
        Chunks scoring under this value are dropped from the result.
    """

    def __init__(
        self,
        index: VectorIndexBase,
        embedder: EmbeddingAdapter,
        collection_name: str,
        *,
        default_k: int = 5,
        score_threshold: float | None = None,
    ) -> None:
        self._index = index
        self._embedder = embedder
        self.collection_name = collection_name
        self.default_k = default_k
        self.score_threshold = score_threshold

    def search(self, query: str, *, k: int | None = None) -> list[RetrievedChunk]:
        """Embed *query* and return the most similar chunks, best first."""
        embedding = self._embedder.embed(query)
        return self.search_by_embedding(embedding, k=k)

    def search_by_embedding(self, embedding: list[float], *, k: int | None = None) -> list[RetrievedChunk]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        k = k or self.default_k
        hits = self._index.search(self.collection_name, embedding, top_k=k)
        results = self._to_results(hits)
        logger.debug("Retrieved %d chunk(s) from %r", len(results), self.collection_name)
        return results

    def _to_results(self, hits: list[ScoredPoint]) -> list[RetrievedChunk]:
        results: list[RetrievedChunk] = []
        for hit in hits:
            if self.score_threshold is not None and hit.score < self.score_threshold:
                continue
            results.append(
                RetrievedChunk(
                    id=hit.id,
                    text=hit.payload.text,
                    source=hit.payload.source,
                    chunk_index=hit.payload.chunk_index,
                    page=hit.payload.page,
                    score=hit.score,
                )
            )
        return results
