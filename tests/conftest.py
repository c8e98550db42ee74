"""Test configuration and utilities."""

from typing import Any, Dict, List, Optional

import pytest

from llmule_bot.config import (
    AppConfig,
    ConversationConfig,
    DiscordConfig,
    LLMConfig,
    LoggingConfig,
    RateLimitConfig,
)
from llmule_bot.llm.models import ChatMessage, ModelInfo


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLLMClient:
    """
    Stand-in for LLMClient that replays scripted outcomes.

    Each entry of `outcomes` is either a reply string or an exception
    instance to raise. The last entry repeats once the script runs out.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None, models: Optional[List[ModelInfo]] = None) -> None:
        self.outcomes = list(outcomes or ["Hello from the model"])
        self.models = models or []
        self.calls: List[Dict[str, Any]] = []

    async def complete(
        self,
        model: str,
        messages: List[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> str:
        self.calls.append({
            "model": model,
            "messages": list(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        index = min(len(self.calls) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def fetch_available_models(self) -> List[ModelInfo]:
        return list(self.models)

    async def get_available_models(self) -> List[ModelInfo]:
        return list(self.models)

    async def close(self) -> None:
        pass


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def settings_path(tmp_path):
    return tmp_path / "user_settings.json"


@pytest.fixture
def test_config(settings_path) -> AppConfig:
    """Create a test configuration."""
    return AppConfig(
        discord=DiscordConfig(token="test_token_" + "x" * 50, channel_id=None),
        llm=LLMConfig(
            api_url="http://localhost:8000/v1/chat/completions",
            api_key="test-key",
            model_name="test-model",
            system_prompt="You are a test assistant.",
            temperature=0.8,
            max_tokens=644,
            max_retries=1,
            retry_base_delay=1.0,
        ),
        rate_limit=RateLimitConfig(messages=4, window_seconds=60, cooldown_ms=5000),
        conversation=ConversationConfig(
            default_memory=2,
            settings_file=str(settings_path),
            show_parameter_legend=True,
        ),
        logging=LoggingConfig(level="DEBUG", format="text"),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def mock_llm_response() -> Dict[str, Any]:
    """OpenAI-style completion body."""
    return {
        "id": "test-completion-123",
        "object": "chat.completion",
        "created": 1234567890,
        "model": "test-model",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "This is a test response from the LLM."
                },
                "finish_reason": "stop"
            }
        ],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": 15,
            "total_tokens": 25
        }
    }
