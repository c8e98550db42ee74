"""
Completion API client for the LLMule Discord bot.

This module provides an HTTP client for an OpenAI-compatible chat
completion API and its sibling model listing endpoint. The client maps
every failure onto the bot's error taxonomy so callers can decide what
to retry; the retry policy itself lives with the caller.
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import aiohttp
from pydantic import ValidationError

from llmule_bot.config import LLMConfig
from llmule_bot.utils.logging import (
    get_logger,
    log_function_call,
    log_http_request,
    log_http_response,
    log_llm_interaction,
    generate_correlation_id,
)
from llmule_bot.utils.exceptions import (
    LLMAPIError,
    MalformedUpstreamResponse,
    ModelUnavailableError,
    TransientUpstreamError,
    UpstreamRequestError,
)
from llmule_bot.llm.models import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ModelInfo,
    ModelList,
    extract_content,
    extract_error_message,
    is_model_unavailable,
)


# Statuses worth another attempt besides 5xx
RETRYABLE_STATUSES = {408, 429}


def _decode_body(text: str) -> Any:
    """Decode a JSON body, falling back to the raw text."""
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class LLMClient:
    """
    HTTP client for completion API communication.

    Key Features:
    - One lazily created aiohttp session with the static `x-api-key` header
    - Typed failures: transient, model unavailable, malformed, rejected
    - Model listing with a time-based cache

    Attributes:
        config: LLM configuration settings
        session: Async HTTP session for API calls
    """

    def __init__(
        self,
        config: LLMConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the completion client.

        Args:
            config: LLM configuration containing API URL, defaults, etc.
            clock: Monotonic clock in seconds, used for the model cache
        """
        self.config = config
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None
        self._closed = False
        self._clock = clock
        self._models_cache: Optional[List[ModelInfo]] = None
        self._models_fetched_at = 0.0

        log_function_call(
            "LLMClient.__init__",
            api_url=config.api_url,
            model_name=config.model_name,
        )

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "LLMule-Discord-Bot/0.1.0",
        }
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        return headers

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """
        Ensure that we have an active HTTP session.

        Raises:
            LLMAPIError: If the client has been closed
        """
        if self._closed:
            raise LLMAPIError("LLM client has been closed")

        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                raise_for_status=False,
            )
            self.logger.debug("Created new HTTP session for LLM client")

        return self.session

    async def complete(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> str:
        """
        Request a chat completion and return the assistant text.

        Args:
            model: Model identifier
            messages: System prompt, prior turns and the new user turn
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            The assistant's reply text

        Raises:
            TransientUpstreamError: Network failure, timeout, 5xx/408/429
            ModelUnavailableError: The API reported the model as unavailable
            MalformedUpstreamResponse: 2xx body in no recognized shape
            UpstreamRequestError: Any other rejected request
        """
        correlation_id = generate_correlation_id()

        request = ChatRequest(
            model=model,
            messages=list(messages),
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=self.config.top_p,
            frequency_penalty=self.config.frequency_penalty,
            presence_penalty=self.config.presence_penalty,
        )
        body = request.model_dump(exclude_none=True)

        log_http_request(
            method="POST",
            url=self.config.api_url,
            headers=self.headers,
            body={**body, "messages": [
                {"role": m["role"], "content_length": len(m["content"])}
                for m in body["messages"]
            ]},
            service="llm",
            correlation_id=correlation_id,
        )

        status, text, response_time_ms = await self._request(
            "POST", self.config.api_url, correlation_id, json_body=body
        )
        payload = _decode_body(text)

        if 200 <= status < 300:
            content = extract_content(payload)
            if content is None:
                self.logger.error(
                    "Unexpected API response structure",
                    body=text,
                    correlation_id=correlation_id,
                )
                raise MalformedUpstreamResponse(
                    text,
                    context={"status_code": status, "correlation_id": correlation_id},
                )

            parsed = None
            if isinstance(payload, dict) and payload.get("choices"):
                try:
                    parsed = ChatResponse.model_validate(payload)
                except ValidationError:
                    parsed = None
            usage = parsed.usage if parsed else None

            log_llm_interaction(
                model=model,
                prompt_tokens=usage.prompt_tokens if usage else None,
                completion_tokens=usage.completion_tokens if usage else None,
                total_tokens=usage.total_tokens if usage else None,
                response_time_ms=response_time_ms,
                correlation_id=correlation_id,
                message_count=len(body["messages"]),
                finish_reason=parsed.finish_reason if parsed else None,
            )
            return content

        self._raise_for_error(status, text, payload, model, correlation_id)

    async def fetch_available_models(self) -> List[ModelInfo]:
        """
        Fetch the model list from the API, bypassing the cache.

        Raises:
            LLMAPIError: (or a subclass) when the listing cannot be fetched
        """
        correlation_id = generate_correlation_id()
        url = self.config.models_url
        log_http_request(
            method="GET",
            url=url,
            headers=self.headers,
            service="llm",
            correlation_id=correlation_id,
        )

        status, text, _ = await self._request("GET", url, correlation_id)
        payload = _decode_body(text)

        if 200 <= status < 300:
            try:
                return ModelList.model_validate(payload).data
            except ValidationError as e:
                raise MalformedUpstreamResponse(
                    text,
                    context={"url": url, "correlation_id": correlation_id},
                ) from e

        self._raise_for_error(status, text, payload, None, correlation_id)

    async def get_available_models(self) -> List[ModelInfo]:
        """Return the model list, refreshing it once the cache TTL has passed."""
        now = self._clock()
        if (
            self._models_cache is None
            or now - self._models_fetched_at > self.config.models_cache_ttl
        ):
            self._models_cache = await self.fetch_available_models()
            self._models_fetched_at = now
            self.logger.debug("Refreshed model cache", model_count=len(self._models_cache))
        return self._models_cache

    def invalidate_models_cache(self) -> None:
        self._models_cache = None
        self._models_fetched_at = 0.0

    async def _request(
        self,
        method: str,
        url: str,
        correlation_id: str,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, str, float]:
        """Send one request; transport failures become TransientUpstreamError."""
        start_time = time.time()
        try:
            session = await self._ensure_session()
            async with session.request(method, url, json=json_body) as response:
                raw = await response.read()
                response_time_ms = (time.time() - start_time) * 1000
                log_http_response(
                    status_code=response.status,
                    response_time_ms=response_time_ms,
                    response_size=len(raw),
                    service="llm",
                    correlation_id=correlation_id,
                )
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError:
                    self.logger.error(
                        "Response body is not valid UTF-8",
                        status_code=response.status,
                        body=raw[:200].decode("utf-8", errors="replace"),
                        correlation_id=correlation_id,
                    )
                    raise MalformedUpstreamResponse(
                        raw,
                        context={"status_code": response.status, "correlation_id": correlation_id},
                    )
                return response.status, text, response_time_ms

        except aiohttp.ClientError as e:
            response_time_ms = (time.time() - start_time) * 1000
            log_http_response(
                status_code=0,
                response_time_ms=response_time_ms,
                error=f"Failed to communicate with LLM API: {e}",
                service="llm",
                correlation_id=correlation_id,
            )
            raise TransientUpstreamError(
                f"Failed to communicate with LLM API: {type(e).__name__}",
                context={"url": url, "correlation_id": correlation_id},
                original_error=e,
            )
        except asyncio.TimeoutError as e:
            response_time_ms = (time.time() - start_time) * 1000
            log_http_response(
                status_code=0,
                response_time_ms=response_time_ms,
                error="LLM API request timed out",
                service="llm",
                correlation_id=correlation_id,
            )
            raise TransientUpstreamError(
                "LLM API request timed out",
                context={"timeout": self.config.timeout, "correlation_id": correlation_id},
                original_error=e,
            )

    def _raise_for_error(
        self,
        status: int,
        text: str,
        payload: Any,
        model: Optional[str],
        correlation_id: str,
    ) -> None:
        """
        Map an error response onto the exception hierarchy.

        Raises:
            LLMAPIError: Always, as the most specific subclass that applies
        """
        error_message = extract_error_message(payload) or (text[:500] if text else "Unknown error")
        context = {
            "status_code": status,
            "error_message": error_message,
            "correlation_id": correlation_id,
        }

        self.logger.warning(
            "LLM API returned an error",
            status_code=status,
            body=text[:2000] if text else None,
            correlation_id=correlation_id,
        )

        if model is not None and is_model_unavailable(payload):
            raise ModelUnavailableError(model, context=context)

        if status >= 500 or status in RETRYABLE_STATUSES:
            raise TransientUpstreamError(
                f"Request failed with status code {status}",
                context=context,
            )

        raise UpstreamRequestError(
            f"Request failed with status code {status}",
            context=context,
        )

    async def close(self) -> None:
        """Close the HTTP session and clean up resources."""
        if not self._closed:
            self.logger.debug("Closing LLM client")

            if self.session and not self.session.closed:
                await self.session.close()

            self._closed = True
            self.logger.debug("LLM client closed")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
