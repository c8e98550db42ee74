"""
Custom exceptions for the LLMule Discord bot.

This module defines a hierarchy of custom exceptions that provide clear
error handling and debugging information throughout the application.
All exceptions inherit from a base LLMuleBotError class for easy
catching and handling. None of them are fatal to the process: the relay
turns each one into a user-facing reply.
"""

from typing import Optional, Any, Dict


class LLMuleBotError(Exception):
    """
    Base exception class for all LLMule bot errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information about the error
        original_error: The original exception that caused this error (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            context: Additional context information
            original_error: The original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        error_str = self.message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            error_str += f" (Context: {context_str})"
        if self.original_error:
            error_str += f" (Caused by: {self.original_error})"
        return error_str


class ConfigurationError(LLMuleBotError):
    """Raised when the bot cannot be configured or started."""
    pass


class RateLimitedError(LLMuleBotError):
    """
    Raised when a user has exceeded the message window or cooldown.

    Attributes:
        retry_after: Whole seconds until the user may send again
    """

    def __init__(self, retry_after: int, reason: Optional[str] = None) -> None:
        super().__init__(
            f"Please slow down! Try again in {retry_after} seconds.",
            context={"retry_after": retry_after, "reason": reason},
        )
        self.retry_after = retry_after
        self.reason = reason


class AlreadyProcessingError(LLMuleBotError):
    """Raised when a user sends a message while their previous one is in flight."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "Please wait! I'm still processing your previous request 😅",
            context={"user_id": user_id},
        )
        self.user_id = user_id


class CommandValidationError(LLMuleBotError):
    """
    Raised when a settings value is out of range or cannot be parsed.

    Raised before any settings are mutated.

    Example:
        ```python
        if not 0 <= value <= 2:
            raise CommandValidationError("Temperature must be between 0 and 2")
        ```
    """
    pass


class InvalidDirectiveError(CommandValidationError):
    """Raised when an inline [key:value] directive carries an unusable value."""

    def __init__(self, key: str, value: str, reason: str) -> None:
        super().__init__(
            f"Invalid inline parameter [{key}:{value}]: {reason}",
            context={"key": key, "value": value},
        )
        self.key = key
        self.value = value
        self.reason = reason


class PersistenceError(LLMuleBotError):
    """Raised when user settings cannot be read from or written to storage."""
    pass


class LLMAPIError(LLMuleBotError):
    """
    Raised when there's an error communicating with the completion API.

    Subclasses tell the relay whether a retry makes sense.
    """
    pass


class TransientUpstreamError(LLMAPIError):
    """Network failure, timeout or 5xx response. Safe to retry."""
    pass


class UpstreamRequestError(LLMAPIError):
    """The API rejected the request (4xx). Retrying would not help."""
    pass


class ModelUnavailableError(LLMAPIError):
    """The API explicitly reported that the requested model is unavailable."""

    def __init__(self, model: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            f"Model {model!r} is not available",
            context=context,
        )
        self.model = model


class MalformedUpstreamResponse(LLMAPIError):
    """
    A successful response whose body matched no recognized schema.

    Attributes:
        body: The raw response body, kept for diagnosis
    """

    def __init__(self, body: Any, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__("Unexpected API response structure", context=context)
        self.body = body


class DiscordAPIError(LLMuleBotError):
    """
    Raised when there's an error with Discord API operations.

    Example:
        ```python
        try:
            await channel.send(message)
        except discord.HTTPException as e:
            raise DiscordAPIError(
                "Failed to send message to Discord",
                context={"channel_id": channel.id, "message_length": len(message)},
                original_error=e
            )
        ```
    """
    pass
