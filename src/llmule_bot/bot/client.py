"""
Discord bot client implementation.

This module contains the Discord client that receives mentions, hands
them to the conversation manager and delivers the reply, plus the
lifecycle wiring for the completion client and slash commands.
"""

from typing import List, Optional

import discord
from discord.ext import commands

from llmule_bot.config import AppConfig
from llmule_bot.conversation.manager import ConversationManager
from llmule_bot.llm.client import LLMClient
from llmule_bot.utils.exceptions import DiscordAPIError
from llmule_bot.utils.formatting import split_message
from llmule_bot.utils.logging import (
    get_logger,
    log_error,
    log_discord_event,
    log_operation_timing,
    generate_correlation_id,
)


GENERIC_ERROR_REPLY = "Sorry, an error occurred while processing your message."


class LLMuleBot(commands.Bot):
    """
    Discord bot that relays mentions to the completion API.

    Attributes:
        config: Application configuration
        llm_client: Completion API client
        conversation_manager: Relay coordinator and state owner
    """

    def __init__(self, config: AppConfig) -> None:
        """
        Initialize the bot.

        Args:
            config: Application configuration containing all settings
        """
        intents = discord.Intents.default()
        intents.message_content = True  # Required to read the prompt text
        intents.guilds = True
        intents.guild_messages = True
        intents.dm_messages = True

        super().__init__(
            command_prefix=config.discord.command_prefix,
            intents=intents,
            help_command=None,  # /help replaces it
        )

        self.config = config
        self.logger = get_logger(__name__)

        # Initialized in setup()
        self.llm_client: Optional[LLMClient] = None
        self.conversation_manager: Optional[ConversationManager] = None

        self._setup_complete = False

    async def setup(self) -> None:
        """
        Set up all bot components.

        Must be called before starting the bot.
        """
        if self._setup_complete:
            return

        self.logger.info("Setting up LLMule bot components")

        try:
            self.llm_client = LLMClient(self.config.llm)
            self.conversation_manager = ConversationManager(
                config=self.config,
                llm_client=self.llm_client,
            )
            await self.conversation_manager.start()

            await self._load_commands()
            await self._load_events()

            self._setup_complete = True
            self.logger.info("Bot setup completed successfully")

        except Exception as e:
            self.logger.error("Failed to set up bot components", error=str(e))
            raise

    async def _load_commands(self) -> None:
        """Load slash commands and text commands."""
        from llmule_bot.bot.commands import setup_commands
        await setup_commands(self)

    async def _load_events(self) -> None:
        """Load event handlers."""
        from llmule_bot.bot.events import setup_events
        await setup_events(self)

    async def on_ready(self) -> None:
        """Called when the bot is ready and connected to Discord."""
        log_discord_event(
            "bot_ready",
            bot_user=str(self.user),
            bot_id=self.user.id if self.user else None,
            guild_count=len(self.guilds),
            channel_id=self.config.discord.channel_id,
        )

        try:
            synced = await self.tree.sync()
            self.logger.info(f"Synced {len(synced)} commands globally")
        except discord.HTTPException as e:
            self.logger.error("Failed to sync commands globally", error=str(e))

        # Warm the model cache used by /set-model autocomplete
        if self.llm_client:
            try:
                models = await self.llm_client.get_available_models()
                self.logger.info("Model list loaded", model_count=len(models))
            except Exception as e:
                self.logger.warning("Could not load model list", error=str(e))

    def should_respond(self, message: discord.Message) -> bool:
        """Mentions of the bot by humans, in the configured channel if one is set."""
        if message.author.bot or self.user is None:
            return False
        if self.user not in message.mentions:
            return False
        channel_id = self.config.discord.channel_id
        return channel_id is None or message.channel.id == channel_id

    def strip_mention(self, content: str) -> str:
        if self.user is None:
            return content.strip()
        for mention in (f"<@{self.user.id}>", f"<@!{self.user.id}>"):
            content = content.replace(mention, "")
        return content.strip()

    async def on_message(self, message: discord.Message) -> None:
        """
        Handle incoming messages.

        Args:
            message: The Discord message object
        """
        if message.author.bot:
            return

        if self.should_respond(message):
            await self._handle_mention(message)

        # Text commands such as !clear-history
        await self.process_commands(message)

    async def _handle_mention(self, message: discord.Message) -> None:
        content = self.strip_mention(message.content)
        if not content or not self.conversation_manager:
            return

        correlation_id = generate_correlation_id()
        log_discord_event(
            "mention_received",
            user_id=message.author.id,
            channel_id=message.channel.id,
            message_length=len(content),
            correlation_id=correlation_id,
        )

        try:
            async with message.channel.typing():
                with log_operation_timing(
                    "relay_message",
                    user_id=message.author.id,
                    channel_id=message.channel.id,
                    correlation_id=correlation_id,
                ):
                    result = await self.conversation_manager.handle_message(
                        user_id=str(message.author.id),
                        channel_id=str(message.channel.id),
                        text=content,
                    )
            await self._send_chunks(message, result.content)

        except Exception as e:
            log_error(e, {
                "message_id": message.id,
                "channel_id": message.channel.id,
                "user_id": message.author.id,
                "correlation_id": correlation_id,
            })
            await self._send_error_response(message, GENERIC_ERROR_REPLY)

    async def _send_chunks(self, original_message: discord.Message, content: str) -> List[discord.Message]:
        """
        Reply with the content split into Discord-sized segments.

        Raises:
            DiscordAPIError: If a segment cannot be sent
        """
        sent = []
        try:
            for chunk in split_message(content):
                sent.append(await original_message.reply(chunk))
        except discord.HTTPException as e:
            raise DiscordAPIError(
                "Failed to send response message",
                context={
                    "channel_id": original_message.channel.id,
                    "content_length": len(content),
                },
                original_error=e,
            )
        return sent

    async def _send_error_response(self, message: discord.Message, error_text: str) -> None:
        """Send an error response to the user."""
        try:
            await message.reply(error_text)
        except discord.HTTPException:
            try:
                await message.channel.send(error_text)
            except discord.HTTPException:
                self.logger.error("Failed to send error response",
                                  error_text=error_text,
                                  message_id=message.id)

    async def close(self) -> None:
        """Clean up resources and close the bot."""
        self.logger.info("Shutting down LLMule bot")

        try:
            if self.conversation_manager:
                await self.conversation_manager.close()

            if self.llm_client:
                await self.llm_client.close()

            await super().close()

        except Exception as e:
            self.logger.error("Error during bot shutdown", error=str(e))
            raise
        finally:
            self.logger.info("Bot shutdown complete")
