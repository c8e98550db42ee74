"""Discord client, slash commands and event handlers."""

from llmule_bot.bot.client import LLMuleBot

__all__ = ["LLMuleBot"]
