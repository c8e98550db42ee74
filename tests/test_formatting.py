"""Tests for reply formatting helpers."""

from llmule_bot.llm.models import ModelInfo
from llmule_bot.settings.models import UserSettings
from llmule_bot.utils.formatting import (
    format_help,
    format_models_table,
    format_parameter_legend,
    format_settings,
    sort_models,
    split_message,
)


class TestSplitMessage:
    """Test Discord-sized chunking."""

    def test_short_message_is_one_chunk(self):
        assert split_message("hello") == ["hello"]

    def test_exact_limit_is_one_chunk(self):
        assert split_message("a" * 2000) == ["a" * 2000]

    def test_long_message_cut_at_fixed_offsets(self):
        content = "a" * 2000 + "b" * 2000 + "c" * 5
        chunks = split_message(content)

        assert chunks == ["a" * 2000, "b" * 2000, "c" * 5]
        assert "".join(chunks) == content

    def test_custom_length(self):
        assert split_message("abcdefg", max_length=3) == ["abc", "def", "g"]


class TestFormatting:
    """Test fixed reply texts."""

    def test_parameter_legend(self):
        assert format_parameter_legend("m", 0.5, 200, 3) == (
            "\n\n*[LLMule params: model=m, temp=0.5, max_tokens=200, memory=3]*"
        )

    def test_settings(self):
        text = format_settings(UserSettings(
            model="m", temperature=1.0, max_tokens=50, memory=4, system_prompt="be kind",
        ))
        assert text.startswith("**Current Settings**")
        assert "Model: `m`" in text
        assert "Temperature: `1`" in text
        assert "Max Tokens: `50`" in text
        assert "Memory: `4` messages" in text
        assert "System Prompt: `be kind`" in text

    def test_sort_models_by_tier(self):
        models = [
            ModelInfo(id="plain"),
            ModelInfo(id="s", tier="small"),
            ModelInfo(id="l", tier="large"),
            ModelInfo(id="m", tier="medium"),
        ]
        assert [m.id for m in sort_models(models)] == ["l", "m", "s", "plain"]

    def test_models_table(self):
        text = format_models_table([ModelInfo(id="s", tier="small"), ModelInfo(id="l", tier="large")])
        assert text.splitlines() == ["**Available Models**", "", "🤖 `l` (large)", "🤖 `s` (small)"]

    def test_models_table_empty(self):
        assert "No models are currently available." in format_models_table([])

    def test_help_lists_commands(self):
        text = format_help()
        for command in ("/models", "/settings", "/set-model", "/set-parameter",
                        "/set-system-prompt", "/set-memory", "/reset-settings",
                        "/clear-history", "/help"):
            assert command in text
