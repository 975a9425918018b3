"""Document loaders: thin wrappers around LangChain document loaders."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from langchain_community.document_loaders import PyPDFLoader, TextLoader

from docqa.errors import DocumentDecodeError, NotFoundError

if TYPE_CHECKING:
    from langchain_core.documents import Document

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
TEXT_MEDIA_TYPES = frozenset({"text/plain", "text/markdown"})
SUPPORTED_MEDIA_TYPES = frozenset({PDF_MEDIA_TYPE, *TEXT_MEDIA_TYPES})

PAGE_SEPARATOR = "\n\n"


@dataclass
class LoadedDocument:
    """Extracted text of one document plus where each page starts in it."""

    text: str
    source: str
    media_type: str
    page_offsets: list[int] = field(default_factory=list)

    def page_at(self, offset: int) -> int | None:
        """Return the 1-based page containing character *offset*, if known."""
        page = None
        for number, start in enumerate(self.page_offsets, 1):
            if start > offset:
                break
            page = number
        return page


def guess_media_type(path: str | Path) -> str:
    """Infer a media type from the file extension."""
    suffix = Path(path).suffix.lower()
    if suffix == ".pdf":
        return PDF_MEDIA_TYPE
    if suffix in {".md", ".markdown"}:
        return "text/markdown"
    return "text/plain"


def _join_pages(pages: list[Document]) -> tuple[str, list[int]]:
    parts: list[str] = []
    offsets: list[int] = []
    cursor = 0
    for page in pages:
        if parts:
            parts.append(PAGE_SEPARATOR)
            cursor += len(PAGE_SEPARATOR)
        offsets.append(cursor)
        parts.append(page.page_content)
        cursor += len(page.page_content)
    return "".join(parts), offsets


def load_pdf(path: str | Path) -> list[Document]:
    """Load a single PDF file, one ``Document`` per page."""
    return PyPDFLoader(str(path)).load()


def load_text(path: str | Path) -> list[Document]:
    """Load a single text or Markdown file."""
    return TextLoader(str(path), encoding="utf-8").load()


def load_document(
    location: str | Path,
    media_type: str | None = None,
    *,
    max_bytes: int | None = None,
) -> LoadedDocument:
    """Load *location* and return its extracted text.

    Parameters
    ----------
    location:
        Path of the file on shared storage.
    media_type:
        Declared media type; guessed from the extension when omitted.
    max_bytes:
        Refuse files larger than this many bytes.

    Raises
    ------
    NotFoundError
        The file does not exist (any more).
    DocumentDecodeError
        The file is too large, of an unsupported type, or cannot be
        parsed / decoded.
    """
    path = Path(location)
    media_type = media_type or guess_media_type(path)

    if not path.is_file():
        raise NotFoundError(f"Document not found: {path}")
    if media_type not in SUPPORTED_MEDIA_TYPES:
        raise DocumentDecodeError(f"Unsupported media type {media_type!r} for {path}")
    if max_bytes is not None and path.stat().st_size > max_bytes:
        raise DocumentDecodeError(
            f"{path} is {path.stat().st_size} bytes, limit is {max_bytes}",
            error_code="DOCUMENT_TOO_LARGE",
        )

    try:
        pages = load_pdf(path) if media_type == PDF_MEDIA_TYPE else load_text(path)
    except FileNotFoundError as exc:
        raise NotFoundError(f"Document not found: {path}") from exc
    except Exception as exc:
        # pypdf / TextLoader raise a wide variety of parse errors.
        raise DocumentDecodeError(f"Could not decode {path}: {exc}") from exc

    text, offsets = _join_pages(pages)
    logger.info("Loaded %s (%s): %d page(s), %d chars", path.name, media_type, len(pages), len(text))
    return LoadedDocument(text=text, source=str(path), media_type=media_type, page_offsets=offsets)
