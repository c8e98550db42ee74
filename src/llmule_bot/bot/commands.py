"""
Discord slash commands and text commands for the LLMule bot.

Settings commands act on the invoking user's settings; history commands
act on the channel they are used in. All slash command responses are
ephemeral.
"""

from typing import List

import discord
from discord import app_commands
from discord.ext import commands

from llmule_bot.conversation.manager import ConversationManager
from llmule_bot.settings.models import MEMORY_RANGE
from llmule_bot.utils.exceptions import CommandValidationError, LLMAPIError, LLMuleBotError
from llmule_bot.utils.formatting import (
    format_help,
    format_models_table,
    format_settings,
    sort_models,
)
from llmule_bot.utils.logging import get_logger, log_function_call


# Discord caps autocomplete responses at 25 choices
MAX_AUTOCOMPLETE_CHOICES = 25


def _manager(bot) -> ConversationManager:
    if not bot.conversation_manager:
        raise LLMuleBotError("Conversation manager not available")
    return bot.conversation_manager


class SettingsCommands(commands.Cog):
    """Per-user model and parameter settings."""

    def __init__(self, bot) -> None:
        self.bot = bot
        self.logger = get_logger(__name__)

    @app_commands.command(name="models", description="List all available AI models")
    async def models(self, interaction: discord.Interaction) -> None:
        log_function_call("models_command", user_id=interaction.user.id)
        await interaction.response.defer(ephemeral=True, thinking=True)

        try:
            models = await self.bot.llm_client.fetch_available_models()
        except LLMAPIError as e:
            self.logger.error("Failed to fetch models", error=str(e))
            await interaction.followup.send(
                f"❌ Could not fetch the model list: {e.message}", ephemeral=True
            )
            return

        await interaction.followup.send(format_models_table(models), ephemeral=True)

    @app_commands.command(name="settings", description="Show current model and parameter settings")
    async def show_settings(self, interaction: discord.Interaction) -> None:
        settings = _manager(self.bot).settings.get_or_create(str(interaction.user.id))
        await interaction.response.send_message(format_settings(settings), ephemeral=True)

    @app_commands.command(name="set-model", description="Change the model to use")
    @app_commands.describe(model="The model to use")
    async def set_model(self, interaction: discord.Interaction, model: str) -> None:
        """
        Select a model for the invoking user.

        Args:
            interaction: Discord slash command interaction
            model: Model identifier, usually picked from autocomplete
        """
        log_function_call("set_model_command", user_id=interaction.user.id, model=model)
        try:
            settings = _manager(self.bot).settings.set_model(str(interaction.user.id), model)
        except CommandValidationError as e:
            await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)
            return
        await interaction.response.send_message(
            f"✅ Model set to: `{settings.model}`", ephemeral=True
        )

    @set_model.autocomplete("model")
    async def model_autocomplete(
        self,
        interaction: discord.Interaction,
        current: str,
    ) -> List[app_commands.Choice[str]]:
        try:
            models = await self.bot.llm_client.get_available_models()
        except LLMAPIError as e:
            self.logger.warning("Model autocomplete unavailable", error=str(e))
            return []

        needle = current.lower()
        return [
            app_commands.Choice(name=model.display_name[:100], value=model.id)
            for model in sort_models(models)
            if needle in model.id.lower()
        ][:MAX_AUTOCOMPLETE_CHOICES]

    @app_commands.command(name="set-parameter", description="Set a parameter value")
    @app_commands.describe(parameter="The parameter to set", value="The value to set")
    @app_commands.choices(parameter=[
        app_commands.Choice(name="temperature", value="temperature"),
        app_commands.Choice(name="max_tokens", value="max_tokens"),
    ])
    async def set_parameter(
        self,
        interaction: discord.Interaction,
        parameter: app_commands.Choice[str],
        value: float,
    ) -> None:
        log_function_call(
            "set_parameter_command",
            user_id=interaction.user.id,
            parameter=parameter.value,
            value=value,
        )
        try:
            settings = _manager(self.bot).settings.set_parameter(
                str(interaction.user.id), parameter.value, value
            )
        except CommandValidationError as e:
            await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)
            return

        stored = getattr(settings, parameter.value)
        await interaction.response.send_message(
            f"✅ {parameter.value} set to: `{stored:g}`", ephemeral=True
        )

    @app_commands.command(name="set-system-prompt", description="Set the system prompt for the AI")
    @app_commands.describe(prompt="The system prompt to use")
    async def set_system_prompt(self, interaction: discord.Interaction, prompt: str) -> None:
        _manager(self.bot).settings.set_system_prompt(str(interaction.user.id), prompt)
        await interaction.response.send_message(
            f"✅ System prompt set to: `{prompt}`", ephemeral=True
        )

    @app_commands.command(name="set-memory", description="Set how many messages to remember")
    @app_commands.describe(messages="Number of messages to remember (1-10)")
    async def set_memory(
        self,
        interaction: discord.Interaction,
        messages: app_commands.Range[int, MEMORY_RANGE[0], MEMORY_RANGE[1]],
    ) -> None:
        try:
            _manager(self.bot).settings.set_memory(str(interaction.user.id), messages)
        except CommandValidationError as e:
            await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)
            return
        await interaction.response.send_message(
            f"✅ Message memory set to: `{messages}` messages", ephemeral=True
        )

    @app_commands.command(name="reset-settings", description="Reset all settings to default values")
    async def reset_settings(self, interaction: discord.Interaction) -> None:
        settings = _manager(self.bot).settings.reset(str(interaction.user.id))
        await interaction.response.send_message(
            "✨ Settings reset to default values!\n" + format_settings(settings),
            ephemeral=True,
        )


class HistoryCommands(commands.Cog):
    """Conversation history and help commands."""

    def __init__(self, bot) -> None:
        self.bot = bot
        self.logger = get_logger(__name__)

    @app_commands.command(name="clear-history", description="Clear your conversation history")
    async def clear_history(self, interaction: discord.Interaction) -> None:
        _manager(self.bot).clear_history(str(interaction.channel_id))
        await interaction.response.send_message(
            "✨ Conversation history cleared!", ephemeral=True
        )

    @commands.command(name="clear-history")
    async def clear_history_text(self, ctx: commands.Context) -> None:
        """Text variant of /clear-history."""
        _manager(self.bot).clear_history(str(ctx.channel.id))
        await ctx.reply("Conversation history cleared! 🧹")

    @commands.command(name="clear-all-history", hidden=True)
    @commands.is_owner()
    async def clear_all_history_text(self, ctx: commands.Context) -> None:
        """Forget the history of every channel. Bot owner only."""
        count = _manager(self.bot).clear_all_history()
        await ctx.reply(f"Cleared conversation history in {count} channel(s). 🧹")

    @app_commands.command(name="help", description="Show available commands and how to use them")
    async def help_command(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(format_help(), ephemeral=True)


async def setup_commands(bot) -> None:
    """
    Set up all bot commands.

    Args:
        bot: The Discord bot instance
    """
    logger = get_logger(__name__)
    logger.debug("Setting up bot commands")

    await bot.add_cog(SettingsCommands(bot))
    await bot.add_cog(HistoryCommands(bot))

    all_commands = bot.tree.get_commands()
    logger.info(f"Total commands registered: {len(all_commands)}")
    for cmd in all_commands:
        logger.debug(f"Registered command: {cmd.name} - {cmd.description}")
