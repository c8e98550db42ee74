"""Text helpers for Discord replies: chunking and the fixed response texts."""

from typing import Iterable, List

from llmule_bot.llm.models import ModelInfo
from llmule_bot.settings.models import UserSettings


DISCORD_MESSAGE_LIMIT = 2000

TIER_ORDER = {"small": 1, "medium": 2, "large": 3}


def split_message(content: str, max_length: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    """
    Cut a reply into segments of at most max_length characters.

    Cuts fall on fixed character offsets, not on line or word boundaries.
    """
    if len(content) <= max_length:
        return [content]
    return [content[i:i + max_length] for i in range(0, len(content), max_length)]


def format_parameter_legend(model: str, temperature: float, max_tokens: int, memory: int) -> str:
    return (
        f"\n\n*[LLMule params: model={model}, temp={temperature:g}, "
        f"max_tokens={max_tokens}, memory={memory}]*"
    )


def format_settings(settings: UserSettings) -> str:
    return (
        "**Current Settings**\n\n"
        f"🤖 Model: `{settings.model}`\n"
        f"🌡️ Temperature: `{settings.temperature:g}`\n"
        f"📝 Max Tokens: `{settings.max_tokens}`\n"
        f"💭 Memory: `{settings.memory}` messages\n"
        f"💬 System Prompt: `{settings.system_prompt}`\n"
    )


def sort_models(models: Iterable[ModelInfo]) -> List[ModelInfo]:
    """Largest tier first; untiered models last, otherwise in listing order."""
    return sorted(models, key=lambda m: TIER_ORDER.get(m.tier or "", 0), reverse=True)


def format_models_table(models: Iterable[ModelInfo]) -> str:
    lines = ["**Available Models**", ""]
    for model in sort_models(models):
        tier = f" ({model.tier})" if model.tier else ""
        lines.append(f"🤖 `{model.id}`{tier}")
    if len(lines) == 2:
        lines.append("No models are currently available.")
    return "\n".join(lines)


def format_help() -> str:
    return (
        "**Available Commands**\n\n"
        "🔍 `/models` - List all available AI models\n"
        "🗑️ `/clear-history` - Clear the conversation history of this channel\n"
        "⚙️ `/settings` - Show current model and parameters\n"
        "🤖 `/set-model <model>` - Change the AI model\n"
        "🎚️ `/set-parameter <parameter> <value>` - Set temperature or max_tokens\n"
        "💭 `/set-system-prompt <prompt>` - Set the system prompt for the AI\n"
        "💭 `/set-memory <1-10>` - Set how many messages to remember\n"
        "🔄 `/reset-settings` - Reset all settings to default values\n"
        "❓ `/help` - Show this help message\n\n"
        "You can also chat with me by mentioning me (@bot)!\n"
        "Override a setting for one message with inline parameters, e.g. "
        "`[temperature:0.5] [max_tokens:200] [model:name] [system:prompt]`."
    )
