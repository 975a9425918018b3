"""
Query — retrieval-augmented question answering over the indexed documents.

Public API
----------
- :class:`QueryService` — ``answer(question) -> QueryAnswer``.
- :class:`ChatModel` — ``complete(system_prompt, user_message) -> str``.
"""

from docqa.query.llm import ChatModel, get_llm
from docqa.query.prompts import FAILURE_REPLY, GROUNDED_SYSTEM_PROMPT, INSUFFICIENT_CONTEXT_REPLY
from docqa.query.service import QueryAnswer, QueryService

__all__ = [
    "FAILURE_REPLY",
    "GROUNDED_SYSTEM_PROMPT",
    "INSUFFICIENT_CONTEXT_REPLY",
    "ChatModel",
    "QueryAnswer",
    "QueryService",
    "get_llm",
]
