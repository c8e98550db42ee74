"""
Logging for the LLMule Discord bot.

Application code logs through structlog. `LOG_FORMAT=json` renders one JSON
object per line; the default `text` format renders `event (key=value, ...)`
lines and routes discord.py's own stdlib logging through rich.

Each concern has a small helper so events carry the same keys wherever
they are emitted: completion API traffic, Discord gateway events, relay
timing, conversation memory and rate limiter rejections.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Optional, Union
from urllib.parse import urlparse

import structlog
from rich.console import Console
from rich.logging import RichHandler

from llmule_bot.config import LoggingConfig


SENSITIVE_HEADER_MARKERS = ("authorization", "token", "key", "secret")

# Request bodies are logged, but never whole prompts
MAX_LOGGED_BODY_CHARS = 1000
MAX_LOGGED_FIELD_CHARS = 100

LIBRARY_LOG_LEVELS = {
    "discord": logging.WARNING,
    "discord.http": logging.WARNING,
    "discord.gateway": logging.INFO,
    "aiohttp": logging.WARNING,
    "asyncio": logging.WARNING,
}

_CONSOLE_HIDDEN_KEYS = {"timestamp", "level", "filename", "lineno"}


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog and the stdlib root logger from `LOG_LEVEL` / `LOG_FORMAT`."""
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(config.level)

    if config.format == "json":
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}',
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        ))
        renderer = _render_json
    else:
        handler = RichHandler(
            console=Console(width=120),
            show_path=True,
            markup=False,
            rich_tracebacks=True,
        )
        renderer = _render_console

    handler.setLevel(config.level)
    root.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.CallsiteParameterAdder(
                parameters=[structlog.processors.CallsiteParameter.FILENAME,
                            structlog.processors.CallsiteParameter.LINENO]
            ),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, config.level)),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name, level in LIBRARY_LOG_LEVELS.items():
        logging.getLogger(name).setLevel(level)


def _render_json(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> str:
    return json.dumps(event_dict, default=str)


def _render_console(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> str:
    message = event_dict.pop("event", "")
    level = event_dict.get("level", "info").upper()

    extras = [f"{k}={v}" for k, v in event_dict.items() if k not in _CONSOLE_HIDDEN_KEYS]
    if extras:
        message += f" ({', '.join(extras)})"

    return f"{event_dict.get('timestamp', '')} {level:<8} {message}"


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def _service_logger(service: str) -> structlog.BoundLogger:
    return get_logger(f"service.{service}").bind(service=service)


def log_function_call(func_name: str, **kwargs: Any) -> None:
    """Debug-level trace of a command handler or constructor call."""
    get_logger().debug("Function called", function=func_name, **kwargs)


def log_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception's type and message at error level, with optional context."""
    get_logger().error(
        "Exception occurred",
        error_type=type(error).__name__,
        error_message=str(error),
        **(context or {}),
    )


def generate_correlation_id() -> str:
    """Short id tying a mention to its API requests in the logs."""
    return uuid.uuid4().hex[:8]


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Copy of headers where credentials keep only their last 4 characters."""
    masked = {}
    for key, value in (headers or {}).items():
        if any(marker in key.lower() for marker in SENSITIVE_HEADER_MARKERS):
            value = f"***{value[-4:]}" if value and len(value) > 4 else "******"
        masked[key] = value
    return masked


def _truncate(value: Any, limit: int) -> Any:
    text = value if isinstance(value, str) else str(value)
    if len(text) <= limit:
        return value
    return f"{text[:limit]}... (truncated)"


def log_http_request(
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Union[str, Dict[str, Any]]] = None,
    service: str = "llm",
    correlation_id: Optional[str] = None,
) -> None:
    """
    Log an outgoing API request.

    Only the host and path of `url` are logged. Credential headers are
    masked and long body values truncated.
    """
    if isinstance(body, dict):
        body = {k: _truncate(v, MAX_LOGGED_FIELD_CHARS) for k, v in body.items()}
    elif body is not None:
        body = _truncate(body, MAX_LOGGED_BODY_CHARS)

    parsed = urlparse(url)
    _service_logger(service).info(
        "HTTP request initiated",
        method=method,
        host=parsed.netloc,
        path=parsed.path,
        headers=mask_headers(headers),
        body=body,
        correlation_id=correlation_id or "none",
    )


def log_http_response(
    status_code: int,
    response_time_ms: float,
    response_size: Optional[int] = None,
    error: Optional[str] = None,
    service: str = "llm",
    correlation_id: Optional[str] = None,
) -> None:
    """
    Log the outcome of an API request.

    `status_code` is 0 when no response arrived. 4xx logs a warning;
    5xx and transport failures log an error.
    """
    if 400 <= status_code < 500:
        level = "warning"
    elif status_code >= 500 or status_code == 0:
        level = "error"
    else:
        level = "info"

    fields: Dict[str, Any] = {
        "status_code": status_code,
        "response_time_ms": round(response_time_ms, 2),
        "correlation_id": correlation_id or "none",
    }
    if response_size is not None:
        fields["response_size_bytes"] = response_size
    if error:
        fields["error"] = error

    message = "HTTP request failed" if error else "HTTP response received"
    getattr(_service_logger(service), level)(message, **fields)


@contextmanager
def log_operation_timing(operation_name: str, **context):
    """Time the wrapped block; yields the correlation id used in its log lines."""
    logger = get_logger()
    correlation_id = context.pop("correlation_id", None) or generate_correlation_id()
    fields = {"operation": operation_name, "correlation_id": correlation_id, **context}

    start_time = time.time()
    logger.debug(f"Starting {operation_name}", **fields)
    try:
        yield correlation_id
    except Exception as e:
        logger.error(
            f"Failed {operation_name}",
            duration_ms=round((time.time() - start_time) * 1000, 2),
            status="error",
            error_type=type(e).__name__,
            error_message=str(e),
            **fields,
        )
        raise
    logger.info(
        f"Completed {operation_name}",
        duration_ms=round((time.time() - start_time) * 1000, 2),
        status="success",
        **fields,
    )


def log_discord_event(event_type: str, **context) -> None:
    _service_logger("discord").info(f"Discord event: {event_type}", event_type=event_type, **context)


def log_llm_interaction(model: str, response_time_ms: Optional[float] = None, **context) -> None:
    """
    Log a completed chat completion.

    Token counts, `finish_reason` and similar keys are passed through
    `context`; keys whose value is None are left out.
    """
    fields = {k: v for k, v in context.items() if v is not None}
    if response_time_ms is not None:
        fields["response_time_ms"] = round(response_time_ms, 2)
    _service_logger("llm").info("LLM interaction completed", model=model, **fields)


def log_conversation_event(event_type: str, channel_id: str, user_id: Optional[str] = None, **context) -> None:
    _service_logger("conversation").info(
        f"Conversation event: {event_type}",
        event_type=event_type,
        channel_id=channel_id,
        user_id=user_id,
        **context,
    )


def log_rate_limit_event(user_id: str, reason: str, retry_after: Optional[int] = None, **context) -> None:
    """Log a message rejected by the rate limiter or the in-flight gate."""
    _service_logger("ratelimit").info(
        "Message rejected",
        user_id=user_id,
        reason=reason,
        retry_after=retry_after,
        **context,
    )
