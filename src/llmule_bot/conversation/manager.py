"""
Conversation management for the LLMule Discord bot.

This module orchestrates the relay of one chat message to the completion
API. It owns all per-process state (user settings, channel history,
rate limiting and in-flight flags) and is the single coordination point
between the Discord layer and the completion client.

Flow for one message:
    in-flight gate -> rate limit -> inline directives -> history
    -> completion with bounded retry -> history update -> reply text

Every failure ends as reply text; nothing here is fatal to the bot.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from llmule_bot.config import AppConfig
from llmule_bot.conversation.memory import ConversationMemory
from llmule_bot.conversation.parameters import EffectiveRequestParameters, ParameterResolver
from llmule_bot.llm.client import LLMClient
from llmule_bot.llm.models import ChatMessage, MessageRole
from llmule_bot.ratelimit.limiter import InFlightTracker, RateLimiter
from llmule_bot.settings.repository import JsonSettingsRepository
from llmule_bot.settings.store import SettingsStore
from llmule_bot.utils.exceptions import (
    AlreadyProcessingError,
    InvalidDirectiveError,
    LLMAPIError,
    ModelUnavailableError,
    RateLimitedError,
    TransientUpstreamError,
)
from llmule_bot.utils.formatting import format_parameter_legend
from llmule_bot.utils.logging import (
    get_logger,
    log_conversation_event,
    log_function_call,
)


MODEL_UNAVAILABLE_REPLY = (
    'Sorry, the language model "{model}" is currently not available. '
    "This might be a temporary issue or the model might be under maintenance. "
    "Please try again later or contact support if the issue persists."
)
GENERIC_FAILURE_REPLY = (
    "Sorry, I encountered an error while processing your request. "
    "Error details: {error}. "
    "Please try again later or contact support if the issue persists."
)
EMPTY_PROMPT_REPLY = "Please include a message along with the inline parameters."


@dataclass(frozen=True)
class RelayResult:
    """
    Outcome of relaying one chat message.

    Attributes:
        content: Text to send back to the channel
        status: "ok", "processing", "rate_limited", "invalid",
            "model_unavailable" or "error"
        retry_after: Seconds to wait, for rate limited results
        parameters: Parameters used for the request, when one was made
    """

    content: str
    status: str = "ok"
    retry_after: Optional[int] = None
    parameters: Optional[EffectiveRequestParameters] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class ConversationManager:
    """
    Central coordinator for message relay and per-process state.

    Attributes:
        config: Full application configuration
        llm_client: Completion API client
        settings: Per-user settings store
        memory: Per-channel conversation history
        rate_limiter: Window and cooldown limiter
        in_flight: Per-user in-flight flags
        resolver: Inline directive and precedence resolver
    """

    def __init__(
        self,
        config: AppConfig,
        llm_client: LLMClient,
        settings: Optional[SettingsStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the conversation manager.

        Args:
            config: Full application configuration
            llm_client: Completion API client
            settings: Settings store (built from config when omitted)
            rate_limiter: Rate limiter (built from config when omitted)
            sleep: Coroutine used for retry backoff
            clock: Monotonic clock in seconds for the rate limiter
        """
        self.config = config
        self.llm_client = llm_client
        self.settings = settings or SettingsStore(
            config.llm,
            config.conversation,
            JsonSettingsRepository(config.conversation.settings_file),
        )
        self.rate_limiter = rate_limiter or RateLimiter(config.rate_limit, clock=clock)
        self.in_flight = InFlightTracker()
        self.memory = ConversationMemory()
        self.resolver = ParameterResolver(config.llm)
        self.logger = get_logger(__name__)
        self._sleep = sleep

        log_function_call("ConversationManager.__init__")

    async def start(self) -> None:
        """Load stored settings and start the rate limit sweeper."""
        self.settings.load()
        self.rate_limiter.start_sweeper()

    async def close(self) -> None:
        await self.rate_limiter.stop_sweeper()

    async def handle_message(self, user_id: str, channel_id: str, text: str) -> RelayResult:
        """
        Relay one chat message and produce the reply text.

        Args:
            user_id: Author identifier
            channel_id: Channel identifier (history key)
            text: Message text with the bot mention removed

        Returns:
            The reply to deliver, whatever happened
        """
        try:
            async with self.in_flight.hold(user_id):
                decision = self.rate_limiter.check_and_admit(user_id)
                if not decision.allowed:
                    raise RateLimitedError(decision.retry_after, decision.reason)
                return await self._relay(user_id, channel_id, text)

        except AlreadyProcessingError as e:
            return RelayResult(e.message, status="processing")
        except RateLimitedError as e:
            return RelayResult(e.message, status="rate_limited", retry_after=e.retry_after)

    async def _relay(self, user_id: str, channel_id: str, text: str) -> RelayResult:
        settings = self.settings.get_or_create(user_id)

        try:
            prompt, params = self.resolver.resolve(text, settings)
        except InvalidDirectiveError as e:
            return RelayResult(f"❌ {e.message}", status="invalid")

        if not prompt:
            return RelayResult(EMPTY_PROMPT_REPLY, status="invalid", parameters=params)

        self.logger.info(
            "Relaying message",
            user_id=user_id,
            channel_id=channel_id,
            model=params.model,
            temperature=params.temperature,
            max_tokens=params.max_tokens,
        )

        try:
            reply = await self.generate_response(channel_id, prompt, params)
        except ModelUnavailableError as e:
            return RelayResult(
                MODEL_UNAVAILABLE_REPLY.format(model=e.model),
                status="model_unavailable",
                parameters=params,
            )
        except LLMAPIError as e:
            self.logger.error(
                "Completion failed",
                user_id=user_id,
                channel_id=channel_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return RelayResult(
                GENERIC_FAILURE_REPLY.format(error=e.message),
                status="error",
                parameters=params,
            )

        memory = self.settings.memory_for(user_id)
        self.memory.append(channel_id, prompt, reply, memory)
        log_conversation_event(
            "exchange_stored",
            channel_id=channel_id,
            user_id=user_id,
            turns=len(self.memory.get(channel_id)),
        )

        if self.config.conversation.show_parameter_legend:
            reply += format_parameter_legend(
                params.model, params.temperature, params.max_tokens, memory
            )
        return RelayResult(reply, parameters=params)

    def build_messages(
        self,
        channel_id: str,
        prompt: str,
        params: EffectiveRequestParameters,
    ) -> List[ChatMessage]:
        """System prompt, then the channel history, then the new user turn."""
        return [
            ChatMessage(role=MessageRole.SYSTEM, content=params.system_prompt),
            *self.memory.get(channel_id),
            ChatMessage(role=MessageRole.USER, content=prompt),
        ]

    async def generate_response(
        self,
        channel_id: str,
        prompt: str,
        params: EffectiveRequestParameters,
    ) -> str:
        """
        Request a completion, retrying transient failures.

        Transient errors are retried `max_retries` times with a backoff of
        `retry_base_delay * 2**retry` seconds. Other errors are raised at once.

        Raises:
            LLMAPIError: The last error once retries are exhausted, or any
                non-transient error
        """
        messages = self.build_messages(channel_id, prompt, params)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.llm.max_retries + 1),
            wait=wait_exponential(multiplier=self.config.llm.retry_base_delay),
            retry=retry_if_exception_type(TransientUpstreamError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                reply = await self.llm_client.complete(
                    model=params.model,
                    messages=messages,
                    temperature=params.temperature,
                    max_tokens=params.max_tokens,
                )
        return reply

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            "Retrying completion after transient failure",
            attempt=retry_state.attempt_number,
            max_attempts=self.config.llm.max_retries + 1,
            backoff_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error) if error else None,
        )

    def clear_history(self, channel_id: str) -> bool:
        return self.memory.clear(channel_id)

    def clear_all_history(self) -> int:
        return self.memory.clear_all()
