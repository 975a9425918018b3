"""Prompt templates for grounded question answering.

Keeping prompts in one place makes them easy to audit and version.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from docqa.retrieval.models import RetrievedChunk

INSUFFICIENT_CONTEXT_REPLY = "I don't have enough information in the provided documents to answer that."

FAILURE_REPLY = "Sorry, something went wrong while answering your question. Please try again later."

CONTEXT_SEPARATOR = "\n\n---\n\n"

GROUNDED_SYSTEM_PROMPT = f"""\
You are a helpful assistant that answers questions about the user's uploaded
documents.

Rules:
1. Answer **only** from the context between <context> and </context>.
   Do not use outside knowledge.
2. If the context is empty or does not contain the answer, reply with
   exactly: "{INSUFFICIENT_CONTEXT_REPLY}"
3. Do NOT fabricate information.
4. Be concise.
"""


def build_context_block(chunks: list[RetrievedChunk], max_chars: int) -> tuple[str, list[RetrievedChunk]]:
    """Concatenate chunk texts, most relevant first, within *max_chars*.

    Returns the block and the chunks that made it in. The first chunk is
    truncated rather than dropped when it alone exceeds the bound; later
    chunks that do not fit are dropped whole.
    """
    parts: list[str] = []
    used: list[RetrievedChunk] = []
    length = 0
    for chunk in chunks:
        separator = len(CONTEXT_SEPARATOR) if parts else 0
        remaining = max_chars - length - separator
        if remaining <= 0:
            break
        text = chunk.text
        if len(text) > remaining:
            if parts:
                break
            text = text[:remaining]
        parts.append(text)
        used.append(chunk)
        length += separator + len(text)
    return CONTEXT_SEPARATOR.join(parts), used


def build_user_message(question: str, context: str) -> str:
    """Wrap *context* and the original *question* into the user turn."""
    return f"<context>\n{context}\n</context>\n\nQuestion: {question}"
