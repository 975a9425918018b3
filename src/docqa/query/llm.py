"""LLM initialisation: the single place to swap providers.

Supports two modes:

1. **OpenAI cloud** (default) — set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint** — set ``LLM_BASE_URL`` to e.g. a vLLM
   server exposing ``/v1/chat/completions``; ``ChatOpenAI`` works unchanged.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from docqa.errors import DocQAError, classify_dependency_error

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from docqa.config import Settings

logger = logging.getLogger(__name__)


def get_llm(settings: Settings) -> ChatOpenAI:
    """Return the configured chat model.

    Retries are disabled on the client: the query service applies its own
    bounded retry policy so that every dependency is retried the same way.
    """
    kwargs: dict = {
        "model": settings.llm_model_name,
        "temperature": settings.llm_temperature,
        "timeout": settings.llm_timeout_seconds,
        "max_retries": 0,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        # Self-hosted servers don't need a real key; the client requires one.
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)


class ChatModel:
    """``complete(system_prompt, user_message) -> text`` over a LangChain chat model."""

    def __init__(self, llm: BaseChatModel) -> None:
        self._llm = llm

    @classmethod
    def from_settings(cls, settings: Settings) -> ChatModel:
        return cls(get_llm(settings))

    def complete(self, system_prompt: str, user_message: str) -> str:
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_message)]
        try:
            response = self._llm.invoke(messages)
        except DocQAError:
            raise
        except Exception as exc:
            raise classify_dependency_error(exc, "chat model") from exc
        content = response.content
        if isinstance(content, list):
            # Some providers return content blocks.
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block) for block in content
            )
        return content
