"""Retrieval-augmented query service."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from docqa.errors import DocQAError, ValidationError
from docqa.query.prompts import (
    FAILURE_REPLY,
    GROUNDED_SYSTEM_PROMPT,
    build_context_block,
    build_user_message,
)
from docqa.retrieval.models import RetrievedChunk
from docqa.retry import call_with_retry

if TYPE_CHECKING:
    from docqa.config import PipelineConfig
    from docqa.query.llm import ChatModel
    from docqa.retrieval.retriever import SemanticRetriever

logger = logging.getLogger(__name__)

MAX_QUESTION_CHARS = 4096


class QueryAnswer(BaseModel):
    """What the query boundary returns, even on failure.

    Attributes
    ----------
    reply:
        The chat model's text verbatim, or a generic failure reply.
    context:
        Chunks that were placed in the prompt, most relevant first.
    grounded:
        ``False`` when the prompt carried no context; the reply is then at
        best an "insufficient context" answer. Callers that require strict
        grounding must check this.
    error_code:
        Set when the reply is a failure reply.
    """

    reply: str
    context: list[RetrievedChunk] = Field(default_factory=list)
    grounded: bool = False
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


def validate_question(question: object) -> str:
    if not isinstance(question, str) or not question.strip():
        raise ValidationError("question must be a non-empty string")
    if len(question) > MAX_QUESTION_CHARS:
        raise ValidationError(f"question exceeds {MAX_QUESTION_CHARS} characters")
    return question.strip()


class QueryService:
    """Answer questions from the indexed documents.

    Parameters
    ----------
    config:
        The same :class:`PipelineConfig` the ingestion workers use.
    retriever:
        Built over the same embedding adapter as ingestion.
    chat:
        Chat model adapter.
    """

    def __init__(self, config: PipelineConfig, retriever: SemanticRetriever, chat: ChatModel) -> None:
        self._config = config
        self._retriever = retriever
        self._chat = chat

    def answer(self, question: str) -> QueryAnswer:
        try:
            question = validate_question(question)
        except ValidationError as exc:
            return QueryAnswer(reply=str(exc), error_code=exc.error_code)

        chunks = self._retrieve(question)
        context, used = build_context_block(chunks, self._config.max_context_chars)
        user_message = build_user_message(question, context)

        try:
            reply = call_with_retry(
                self._config, lambda: self._chat.complete(GROUNDED_SYSTEM_PROMPT, user_message)
            )
        except DocQAError as exc:
            logger.error("Chat model failed [%s]: %s", exc.error_code, exc)
            return QueryAnswer(reply=FAILURE_REPLY, context=used, grounded=bool(used), error_code=exc.error_code)
        except Exception:
            logger.exception("Unexpected failure while answering")
            return QueryAnswer(reply=FAILURE_REPLY, context=used, grounded=bool(used), error_code="INTERNAL_ERROR")

        logger.info("Answered question (%d chars) with %d context chunk(s)", len(question), len(used))
        return QueryAnswer(reply=reply, context=used, grounded=bool(used))

    def _retrieve(self, question: str) -> list[RetrievedChunk]:
        """Top-k chunks for *question*; empty when retrieval is impossible.

        A missing collection, an unreachable index or an embedding failure
        all degrade to an empty context instead of failing the query.
        """
        try:
            return call_with_retry(
                self._config, lambda: self._retriever.search(question, k=self._config.top_k)
            )
        except DocQAError as exc:
            logger.warning("Retrieval unavailable, answering without context [%s]: %s", exc.error_code, exc)
            return []
