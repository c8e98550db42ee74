"""Utility modules for the LLMule Discord bot."""

from llmule_bot.utils.exceptions import (
    LLMuleBotError,
    ConfigurationError,
    RateLimitedError,
    AlreadyProcessingError,
    CommandValidationError,
    InvalidDirectiveError,
    PersistenceError,
    LLMAPIError,
    TransientUpstreamError,
    UpstreamRequestError,
    ModelUnavailableError,
    MalformedUpstreamResponse,
    DiscordAPIError,
)
from llmule_bot.utils.logging import setup_logging

__all__ = [
    "LLMuleBotError",
    "ConfigurationError",
    "RateLimitedError",
    "AlreadyProcessingError",
    "CommandValidationError",
    "InvalidDirectiveError",
    "PersistenceError",
    "LLMAPIError",
    "TransientUpstreamError",
    "UpstreamRequestError",
    "ModelUnavailableError",
    "MalformedUpstreamResponse",
    "DiscordAPIError",
    "setup_logging",
]
