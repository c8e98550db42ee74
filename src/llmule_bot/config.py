"""
Configuration management for the LLMule Discord bot.

This module handles all configuration loading from environment variables,
validation, and provides typed configuration objects for use throughout
the application.

Numeric tuning knobs (rate limits, sampling defaults, retry settings) are
only validated by type coercion: a value that cannot be coerced falls back
to the field default instead of failing startup, and no range checks are
applied at load time.
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import Field, ValidationInfo, field_validator, validator
from pydantic_settings import BaseSettings


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant in a Discord server. "
    "Be friendly, concise, and helpful."
)


def _coerce_or_default(cls: type, value: Any, info: ValidationInfo) -> Any:
    """Coerce a raw env value to the field's type, or fall back to its default."""
    field = cls.model_fields[info.field_name]
    default = field.default
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    target = type(default)
    try:
        if target is int:
            try:
                return int(value)
            except (TypeError, ValueError):
                # "3.7" -> 3, same as a leading-integer parse
                return int(float(value))
        if target is float:
            return float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return value


class DiscordConfig(BaseSettings):
    """Discord bot configuration settings."""

    token: str = Field(
        default="",
        description="Discord bot token from Developer Portal"
    )
    channel_id: Optional[int] = Field(
        default=None,
        description="Only respond to mentions in this channel (None for any channel)"
    )
    command_prefix: str = Field(
        default="!",
        description="Command prefix for text commands"
    )

    class Config:
        env_prefix = "DISCORD_"

    @field_validator("channel_id", mode="before")
    @classmethod
    def empty_channel_is_none(cls, v: Any) -> Any:
        """Treat an empty DISCORD_CHANNEL_ID as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class LLMConfig(BaseSettings):
    """Completion API configuration and process-wide request defaults."""

    api_url: str = Field(
        default="http://localhost:8000/v1/chat/completions",
        description="Chat completion endpoint URL"
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Static credential sent in the x-api-key header"
    )
    model_name: str = Field(
        default="default-model",
        description="Default model when the user has not selected one"
    )
    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        description="Default system prompt"
    )
    temperature: float = Field(
        default=0.8,
        description="Default sampling temperature"
    )
    max_tokens: int = Field(
        default=644,
        description="Default maximum tokens in a response"
    )
    top_p: float = Field(default=0.9, description="Nucleus sampling parameter")
    frequency_penalty: float = Field(default=0.1, description="Frequency penalty")
    presence_penalty: float = Field(default=0.1, description="Presence penalty")
    timeout: int = Field(
        default=60,
        description="Request timeout in seconds"
    )
    max_retries: int = Field(
        default=1,
        description="Retries after a transient upstream failure"
    )
    retry_base_delay: float = Field(
        default=1.0,
        description="First backoff delay in seconds, doubled on every retry"
    )
    models_cache_ttl: int = Field(
        default=300,
        description="Seconds to cache the model list"
    )

    class Config:
        env_prefix = "LLM_"
        protected_namespaces = ()

    coerce_numbers = field_validator(
        "temperature",
        "max_tokens",
        "top_p",
        "frequency_penalty",
        "presence_penalty",
        "timeout",
        "max_retries",
        "retry_base_delay",
        "models_cache_ttl",
        mode="before",
    )(_coerce_or_default)

    @property
    def models_url(self) -> str:
        """The model listing endpoint, a sibling of the completion path."""
        return self.api_url.replace("/chat/completions", "/models")


class RateLimitConfig(BaseSettings):
    """Per-user rate limiting configuration."""

    messages: int = Field(
        default=4,
        description="Messages allowed per user inside the window"
    )
    window_seconds: float = Field(
        default=60.0,
        description="Sliding window length in seconds"
    )
    cooldown_ms: int = Field(
        default=5000,
        description="Minimum spacing between two messages from one user"
    )
    sweep_interval_seconds: Optional[float] = Field(
        default=None,
        description="How often idle entries are evicted (defaults to the window length)"
    )

    class Config:
        env_prefix = "RATE_LIMIT_"

    coerce_numbers = field_validator(
        "messages",
        "window_seconds",
        "cooldown_ms",
        mode="before",
    )(_coerce_or_default)

    @field_validator("sweep_interval_seconds", mode="before")
    @classmethod
    def coerce_sweep_interval(cls, v: Any) -> Any:
        """Unparseable sweep intervals mean "use the window length"."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_ms / 1000.0

    @property
    def effective_sweep_interval(self) -> float:
        return self.sweep_interval_seconds or self.window_seconds


class ConversationConfig(BaseSettings):
    """Conversation memory and user settings configuration."""

    default_memory: int = Field(
        default=2,
        description="Exchanges remembered per channel when the user has no override"
    )
    settings_file: str = Field(
        default="user_settings.json",
        description="JSON file holding per-user settings"
    )
    show_parameter_legend: bool = Field(
        default=True,
        description="Append the effective parameters to every reply"
    )

    class Config:
        env_prefix = "CONVERSATION_"

    coerce_numbers = field_validator("default_memory", mode="before")(
        _coerce_or_default
    )


class LoggingConfig(BaseSettings):
    """Logging configuration settings."""

    level: str = Field(
        default="INFO",
        description="Logging level"
    )
    format: str = Field(
        default="text",
        description="Log format: 'json' or 'text'"
    )

    class Config:
        env_prefix = "LOG_"

    @validator("level")
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @validator("format")
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in {"json", "text"}:
            raise ValueError("Log format must be 'json' or 'text'")
        return v


class AppConfig(BaseSettings):
    """Main application configuration."""

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Sub-configurations
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        # Load from .env file if present
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def load_config() -> AppConfig:
    """
    Load and validate application configuration.

    This function loads configuration from environment variables and .env files,
    validates all settings, and returns a fully configured AppConfig instance.

    Returns:
        AppConfig: Validated application configuration

    Raises:
        ValidationError: If configuration is invalid

    Example:
        ```python
        config = load_config()
        print(f"Bot will connect to: {config.llm.api_url}")
        ```
    """
    # Populate os.environ so every sub-config sees .env values
    env_file = Path(".env")
    if env_file.exists():
        from dotenv import load_dotenv
        load_dotenv(env_file)

    return AppConfig()
