"""Fixed-size, overlapping text chunking."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from langchain_text_splitters import TextSplitter
from pydantic import BaseModel, ConfigDict

from docqa.errors import ValidationError

if TYPE_CHECKING:
    from docqa.ingestion.loader import LoadedDocument


class Chunk(BaseModel):
    """A contiguous span ``text[start_index:end_index]`` of a document."""

    model_config = ConfigDict(frozen=True)

    text: str
    source: str
    document_id: str
    chunk_index: int
    start_index: int
    end_index: int
    page: int | None = None


def _windows(length: int, chunk_size: int, chunk_overlap: int) -> Iterator[tuple[int, int]]:
    step = chunk_size - chunk_overlap
    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        yield start, end
        if end == length:
            return
        start += step


class FixedSizeTextSplitter(TextSplitter):
    """Slide a ``chunk_size`` window over the text in ``chunk_size - chunk_overlap`` steps.

    Unlike LangChain's separator-based splitters the cut points ignore
    sentence and paragraph boundaries. That makes two guarantees hold for
    any input:

    * every pair of neighbouring chunks shares exactly ``chunk_overlap``
      characters, and
    * dropping each chunk's first ``chunk_overlap`` characters (except the
      first chunk's) and concatenating reproduces the input exactly.

    The trailing window may be shorter than ``chunk_size``; it is never
    dropped.
    """

    def __init__(self, chunk_size: int = 500, chunk_overlap: int = 50, **kwargs) -> None:
        if chunk_size <= 0:
            raise ValidationError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0:
            raise ValidationError(f"chunk_overlap must be >= 0, got {chunk_overlap}")
        if chunk_overlap >= chunk_size:
            raise ValidationError(
                f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})"
            )
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap, **kwargs)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def iter_spans(self, text: str) -> Iterator[tuple[int, int]]:
        """Yield ``(start, end)`` offsets of each chunk."""
        return _windows(len(text), self.chunk_size, self.chunk_overlap)

    def split_text(self, text: str) -> list[str]:
        return [text[start:end] for start, end in self.iter_spans(text)]


def iter_chunks(
    document: LoadedDocument,
    document_id: str,
    chunk_size: int = 500,
    chunk_overlap: int = 50,
) -> Iterator[Chunk]:
    """Lazily chunk *document*, attaching provenance to every chunk.

    Parameters
    ----------
    document:
        Text produced by the loader.
    document_id:
        Stable identifier of the document; part of every chunk's identity.
    chunk_size:
        Number of characters per chunk.
    chunk_overlap:
        Number of characters shared by neighbouring chunks.

    Yields
    ------
    Chunk
        In document order. An empty document yields nothing.
    """
    splitter = FixedSizeTextSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    text = document.text
    for index, (start, end) in enumerate(splitter.iter_spans(text)):
        yield Chunk(
            text=text[start:end],
            source=document.source,
            document_id=document_id,
            chunk_index=index,
            start_index=start,
            end_index=end,
            page=document.page_at(start),
        )


def chunk_document(
    document: LoadedDocument,
    document_id: str,
    chunk_size: int = 500,
    chunk_overlap: int = 50,
) -> list[Chunk]:
    """List form of :func:`iter_chunks`."""
    return list(iter_chunks(document, document_id, chunk_size, chunk_overlap))
