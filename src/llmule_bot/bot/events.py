"""
Discord event handlers for the LLMule bot.

This module contains the handlers for text command failures, slash
command failures and errors raised inside other event callbacks.
"""

import sys
from typing import Any

import discord
from discord import app_commands
from discord.ext import commands

from llmule_bot.utils.exceptions import CommandValidationError
from llmule_bot.utils.logging import get_logger, log_error


UNEXPECTED_COMMAND_ERROR = "❌ An unexpected error occurred while processing your command."


async def _respond(interaction: discord.Interaction, text: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(text, ephemeral=True)
    else:
        await interaction.response.send_message(text, ephemeral=True)


async def setup_events(bot) -> None:
    """
    Set up event handlers for the bot.

    Args:
        bot: The Discord bot instance
    """
    logger = get_logger(__name__)
    logger.debug("Setting up event handlers")

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError) -> None:
        """
        Handle text command errors.

        Args:
            ctx: Command context
            error: The error that occurred
        """
        # Mentions and chatter that happen to start with the prefix
        if isinstance(error, commands.CommandNotFound):
            return

        if isinstance(error, commands.MissingRequiredArgument):
            await ctx.send(f"❌ Missing required argument: `{error.param.name}`")
            return

        if isinstance(error, commands.BadArgument):
            await ctx.send(f"❌ Invalid argument provided: {error}")
            return

        if isinstance(error, commands.NotOwner):
            await ctx.send("❌ Only the bot owner can use this command.")
            return

        log_error(error, {
            "command": ctx.command.name if ctx.command else "unknown",
            "user_id": ctx.author.id,
            "channel_id": ctx.channel.id,
            "guild_id": ctx.guild.id if ctx.guild else None,
        })

        await ctx.send(UNEXPECTED_COMMAND_ERROR)

    async def on_app_command_error(
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        """
        Handle slash command errors.

        Args:
            interaction: The interaction that caused the error
            error: The error that occurred
        """
        original = getattr(error, "original", error)

        if isinstance(original, CommandValidationError):
            await _respond(interaction, f"❌ {original.message}")
            return

        if isinstance(error, app_commands.TransformerError):
            await _respond(interaction, f"❌ Invalid argument provided: {error}")
            return

        log_error(original, {
            "command": interaction.command.name if interaction.command else "unknown",
            "user_id": interaction.user.id,
            "channel_id": interaction.channel_id,
            "guild_id": interaction.guild_id,
        })

        try:
            await _respond(interaction, UNEXPECTED_COMMAND_ERROR)
        except discord.HTTPException as e:
            logger.error("Failed to send command error response", error=str(e))

    # Slash command failures are dispatched by the command tree, not the client
    bot.tree.on_error = on_app_command_error

    @bot.event
    async def on_error(event: str, *args: Any, **kwargs: Any) -> None:
        """
        Handle errors raised inside other event handlers.

        Args:
            event: The event that caused the error
            *args: Event arguments
            **kwargs: Event keyword arguments
        """
        _, exc_value, _ = sys.exc_info()

        if exc_value:
            log_error(exc_value, {
                "event": event,
                "args": str(args)[:500],
                "kwargs": str(kwargs)[:500],
            })
        else:
            logger.error("Unknown error in event", event=event)

    @bot.event
    async def on_guild_join(guild: discord.Guild) -> None:
        logger.info("Bot joined new guild",
                    guild_id=guild.id,
                    guild_name=guild.name,
                    member_count=guild.member_count)

    @bot.event
    async def on_guild_remove(guild: discord.Guild) -> None:
        logger.info("Bot removed from guild",
                    guild_id=guild.id,
                    guild_name=guild.name)

    logger.info("Event handlers set up successfully")
