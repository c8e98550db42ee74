"""Tests for the conversation manager relay flow."""

import asyncio

import pytest

from llmule_bot.conversation.manager import (
    EMPTY_PROMPT_REPLY,
    ConversationManager,
)
from llmule_bot.llm.models import MessageRole
from llmule_bot.utils.exceptions import (
    MalformedUpstreamResponse,
    ModelUnavailableError,
    TransientUpstreamError,
    UpstreamRequestError,
)

from conftest import FakeLLMClient


@pytest.fixture
def manager(test_config, fake_llm, clock, recording_sleep) -> ConversationManager:
    return ConversationManager(
        config=test_config,
        llm_client=fake_llm,
        sleep=recording_sleep,
        clock=clock,
    )


def build_manager(test_config, llm, clock, sleep, **llm_overrides) -> ConversationManager:
    config = test_config
    if llm_overrides:
        config = test_config.model_copy(update={"llm": test_config.llm.model_copy(update=llm_overrides)})
    return ConversationManager(config=config, llm_client=llm, sleep=sleep, clock=clock)


class TestRelay:
    """Test a successful relay."""

    @pytest.mark.asyncio
    async def test_reply_with_legend(self, manager, fake_llm):
        result = await manager.handle_message("u1", "c1", "Hello there")

        assert result.ok
        assert result.content == (
            "Hello from the model"
            "\n\n*[LLMule params: model=test-model, temp=0.8, max_tokens=644, memory=2]*"
        )

    @pytest.mark.asyncio
    async def test_request_contains_system_history_and_prompt(self, manager, fake_llm, clock):
        await manager.handle_message("u1", "c1", "first")
        clock.advance(10)
        await manager.handle_message("u1", "c1", "second")

        messages = fake_llm.calls[1]["messages"]
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.SYSTEM.value, "You are a test assistant."),
            (MessageRole.USER.value, "first"),
            (MessageRole.ASSISTANT.value, "Hello from the model"),
            (MessageRole.USER.value, "second"),
        ]

    @pytest.mark.asyncio
    async def test_history_stores_reply_without_legend(self, manager):
        await manager.handle_message("u1", "c1", "hi")

        stored = manager.memory.get("c1")
        assert stored[-1].content == "Hello from the model"

    @pytest.mark.asyncio
    async def test_legend_can_be_disabled(self, test_config, fake_llm, clock, recording_sleep):
        config = test_config.model_copy(update={
            "conversation": test_config.conversation.model_copy(update={"show_parameter_legend": False}),
        })
        manager = ConversationManager(config=config, llm_client=fake_llm, sleep=recording_sleep, clock=clock)

        result = await manager.handle_message("u1", "c1", "hi")
        assert result.content == "Hello from the model"

    @pytest.mark.asyncio
    async def test_inline_directives_apply_to_one_message(self, manager, fake_llm, clock):
        result = await manager.handle_message(
            "u1", "c1", "[temperature:0.5][max_tokens:200][model:other] What is AI?"
        )

        call = fake_llm.calls[0]
        assert call["temperature"] == 0.5
        assert call["max_tokens"] == 200
        assert call["model"] == "other"
        assert call["messages"][-1].content == "What is AI?"
        assert "model=other, temp=0.5, max_tokens=200" in result.content

        # Stored settings are untouched
        settings = manager.settings.get("u1")
        assert settings.temperature == 0.8
        assert settings.model == "test-model"

        clock.advance(10)
        await manager.handle_message("u1", "c1", "again")
        assert fake_llm.calls[1]["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_user_settings_are_used(self, manager, fake_llm):
        manager.settings.set_model("u1", "chosen-model")
        manager.settings.set_parameter("u1", "temperature", 0.1)

        await manager.handle_message("u1", "c1", "hi")
        assert fake_llm.calls[0]["model"] == "chosen-model"
        assert fake_llm.calls[0]["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_first_message_creates_settings(self, manager, settings_path):
        await manager.handle_message("u1", "c1", "hi")
        assert "u1" in manager.settings
        assert settings_path.exists()

    @pytest.mark.asyncio
    async def test_memory_of_one(self, manager, fake_llm, clock):
        """With memory 1 only the previous exchange is sent."""
        manager.settings.set_memory("u1", 1)
        fake_llm.outcomes = ["A1", "A2", "A3"]

        for text in ("Q1", "Q2", "Q3"):
            await manager.handle_message("u1", "c1", text)
            clock.advance(10)

        contents = [m.content for m in fake_llm.calls[2]["messages"]]
        assert contents == ["You are a test assistant.", "Q2", "A2", "Q3"]
        assert [m.content for m in manager.memory.get("c1")] == ["Q3", "A3"]

    @pytest.mark.asyncio
    async def test_clear_history(self, manager, fake_llm, clock):
        await manager.handle_message("u1", "c1", "hi")
        assert manager.clear_history("c1")

        clock.advance(10)
        await manager.handle_message("u1", "c1", "hello again")
        assert len(fake_llm.calls[1]["messages"]) == 2


class TestRelayRejections:
    """Test messages that never reach the API."""

    @pytest.mark.asyncio
    async def test_invalid_directive(self, manager, fake_llm):
        result = await manager.handle_message("u1", "c1", "[temperature:hot] hi")

        assert result.status == "invalid"
        assert result.content == "❌ Invalid inline parameter [temperature:hot]: not a number"
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_directives_only(self, manager, fake_llm):
        result = await manager.handle_message("u1", "c1", "[temperature:0.5]")

        assert result.status == "invalid"
        assert result.content == EMPTY_PROMPT_REPLY
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_cooldown(self, manager, clock):
        await manager.handle_message("u1", "c1", "hi")
        clock.advance(1)
        result = await manager.handle_message("u1", "c1", "again")

        assert result.status == "rate_limited"
        assert result.retry_after == 4
        assert result.content == "Please slow down! Try again in 4 seconds."

    @pytest.mark.asyncio
    async def test_window(self, manager, clock):
        for _ in range(4):
            assert (await manager.handle_message("u1", "c1", "hi")).ok
            clock.advance(6)

        result = await manager.handle_message("u1", "c1", "one more")
        assert result.status == "rate_limited"
        assert result.retry_after == 36

    @pytest.mark.asyncio
    async def test_in_flight_rejects_concurrent_message(self, test_config, clock, recording_sleep):
        """A second message while the first is running is rejected, not queued."""
        started = asyncio.Event()
        release = asyncio.Event()

        class SlowLLM(FakeLLMClient):
            async def complete(self, **kwargs):
                started.set()
                await release.wait()
                return await super().complete(**kwargs)

        llm = SlowLLM()
        manager = ConversationManager(config=test_config, llm_client=llm, sleep=recording_sleep, clock=clock)

        first = asyncio.create_task(manager.handle_message("u1", "c1", "slow one"))
        await started.wait()
        second = await manager.handle_message("u1", "c1", "impatient")

        assert second.status == "processing"
        assert second.content == "Please wait! I'm still processing your previous request 😅"

        release.set()
        assert (await first).ok
        assert not manager.in_flight.is_processing("u1")
        assert len(llm.calls) == 1


class TestRelayFailures:
    """Test upstream failures and retries."""

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried_once(self, manager, fake_llm, recording_sleep):
        fake_llm.outcomes = [TransientUpstreamError("Request failed with status code 503"), "recovered"]

        result = await manager.handle_message("u1", "c1", "hi")

        assert result.ok
        assert result.content.startswith("recovered")
        assert len(fake_llm.calls) == 2
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, manager, fake_llm, recording_sleep):
        fake_llm.outcomes = [TransientUpstreamError("Request failed with status code 503")]

        result = await manager.handle_message("u1", "c1", "hi")

        assert result.status == "error"
        assert result.content == (
            "Sorry, I encountered an error while processing your request. "
            "Error details: Request failed with status code 503. "
            "Please try again later or contact support if the issue persists."
        )
        assert len(fake_llm.calls) == 2
        assert manager.memory.get("c1") == []
        assert not manager.in_flight.is_processing("u1")

    @pytest.mark.asyncio
    async def test_backoff_doubles(self, test_config, clock, recording_sleep):
        llm = FakeLLMClient([TransientUpstreamError("down")])
        manager = build_manager(test_config, llm, clock, recording_sleep, max_retries=3)

        await manager.handle_message("u1", "c1", "hi")

        assert len(llm.calls) == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_no_retries_configured(self, test_config, clock, recording_sleep):
        llm = FakeLLMClient([TransientUpstreamError("down")])
        manager = build_manager(test_config, llm, clock, recording_sleep, max_retries=0)

        result = await manager.handle_message("u1", "c1", "hi")

        assert result.status == "error"
        assert len(llm.calls) == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_model_unavailable_is_not_retried(self, manager, fake_llm, recording_sleep):
        fake_llm.outcomes = [ModelUnavailableError("gone-model")]

        result = await manager.handle_message("u1", "c1", "[model:gone-model] hi")

        assert result.status == "model_unavailable"
        assert 'the language model "gone-model" is currently not available' in result.content
        assert len(fake_llm.calls) == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        UpstreamRequestError("Request failed with status code 400"),
        MalformedUpstreamResponse('{"foo": "bar"}'),
    ])
    async def test_permanent_failures_are_not_retried(self, manager, fake_llm, error):
        fake_llm.outcomes = [error]

        result = await manager.handle_message("u1", "c1", "hi")

        assert result.status == "error"
        assert error.message in result.content
        assert len(fake_llm.calls) == 1

    @pytest.mark.asyncio
    async def test_failure_still_counts_against_rate_limit(self, manager, fake_llm, clock):
        fake_llm.outcomes = [UpstreamRequestError("bad")]
        await manager.handle_message("u1", "c1", "hi")

        clock.advance(1)
        result = await manager.handle_message("u1", "c1", "hi again")
        assert result.status == "rate_limited"


class TestLifecycle:
    """Test start and close."""

    @pytest.mark.asyncio
    async def test_start_loads_settings(self, manager, settings_path):
        settings_path.write_text('{"u9": {"model": "saved-model"}}')

        await manager.start()
        try:
            assert manager.settings.get("u9").model == "saved-model"
        finally:
            await manager.close()
