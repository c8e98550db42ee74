"""Completion API integration for the Discord bot."""

from llmule_bot.llm.client import LLMClient
from llmule_bot.llm.models import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    MessageRole,
    ModelInfo,
)

__all__ = [
    "LLMClient",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "MessageRole",
    "ModelInfo",
]
