"""Conversation management modules for the Discord bot."""

from llmule_bot.conversation.manager import ConversationManager, RelayResult
from llmule_bot.conversation.memory import ConversationMemory
from llmule_bot.conversation.parameters import EffectiveRequestParameters, ParameterResolver

__all__ = [
    "ConversationManager",
    "RelayResult",
    "ConversationMemory",
    "EffectiveRequestParameters",
    "ParameterResolver",
]
