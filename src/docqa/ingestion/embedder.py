"""Embedding adapter, the only code that talks to the embedding model."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from docqa.errors import ConfigurationConflictError, DocQAError, classify_dependency_error

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from docqa.config import PipelineConfig, Settings

logger = logging.getLogger(__name__)

_DIMENSION_PROBE = "dimension probe"


def get_embeddings(config: PipelineConfig, settings: Settings) -> Embeddings:
    """Return the LangChain embedding model named by *config*."""
    if config.embedding_provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        return OpenAIEmbeddings(
            model=config.embedding_model,
            api_key=settings.openai_api_key,
            timeout=settings.embedding_timeout_seconds,
            max_retries=0,
        )

    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(
        model_name=config.embedding_model,
        encode_kwargs={"normalize_embeddings": True},
    )


class EmbeddingAdapter:
    """Map text to fixed-length vectors through a LangChain ``Embeddings``.

    Parameters
    ----------
    embeddings:
        The underlying model client.
    model_name:
        Identifier recorded alongside indexed points.
    dimension:
        Declared vector size. When *None* it is probed once from the model.
    batch_size:
        Texts per ``embed_documents`` call in :meth:`embed_many`.
    concurrency:
        Maximum number of batches in flight at once.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        model_name: str,
        *,
        dimension: int | None = None,
        batch_size: int = 64,
        concurrency: int = 4,
    ) -> None:
        self._embeddings = embeddings
        self.model_name = model_name
        self._dimension = dimension
        self._batch_size = batch_size
        self._concurrency = concurrency
        self._probe_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: PipelineConfig, settings: Settings) -> EmbeddingAdapter:
        return cls(
            get_embeddings(config, settings),
            config.embedding_model,
            dimension=config.embedding_dimension,
            batch_size=config.embedding_batch_size,
            concurrency=config.embedding_concurrency,
        )

    @property
    def dimension(self) -> int:
        """Vector size produced by the model."""
        if self._dimension is None:
            with self._probe_lock:
                if self._dimension is None:
                    vector = self._call(lambda: self._embeddings.embed_query(_DIMENSION_PROBE))
                    self._dimension = len(vector)
                    logger.info("Probed embedding dimension for %s: %d", self.model_name, self._dimension)
        return self._dimension

    def embed(self, text: str) -> list[float]:
        """Embed a single query text."""
        vector = self._call(lambda: self._embeddings.embed_query(text))
        self._check_dimension(vector)
        return vector

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, returning one vector per input in the same order."""
        if not texts:
            return []

        batches = [
            texts[start : start + self._batch_size]
            for start in range(0, len(texts), self._batch_size)
        ]
        if len(batches) == 1 or self._concurrency == 1:
            results = [self._embed_batch(batch) for batch in batches]
        else:
            with ThreadPoolExecutor(max_workers=min(self._concurrency, len(batches))) as pool:
                # map() keeps batch order and re-raises the first failure.
                results = list(pool.map(self._embed_batch, batches))

        vectors = [vector for batch in results for vector in batch]
        logger.debug("Embedded %d texts in %d batch(es)", len(vectors), len(batches))
        return vectors

    # -- internals ------------------------------------------------------------

    def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        vectors = self._call(lambda: self._embeddings.embed_documents(batch))
        if len(vectors) != len(batch):
            raise ConfigurationConflictError(
                self.model_name, len(vectors), len(batch), field="batch length"
            )
        for vector in vectors:
            self._check_dimension(vector)
        return vectors

    def _check_dimension(self, vector: list[float]) -> None:
        if len(vector) != self.dimension:
            raise ConfigurationConflictError(self.model_name, self.dimension, len(vector))

    def _call(self, fn):  # noqa: ANN001, ANN202
        try:
            return fn()
        except DocQAError:
            raise
        except Exception as exc:
            raise classify_dependency_error(exc, "embedding model") from exc
