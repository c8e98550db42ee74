"""
Main entry point for the LLMule Discord bot.

This module provides the main function and CLI interface for starting
the Discord bot. It handles configuration loading, logging setup,
and graceful shutdown handling.
"""

import asyncio
import signal
import sys
from typing import Optional

from llmule_bot import __version__
from llmule_bot.config import load_config, AppConfig
from llmule_bot.utils.logging import setup_logging, get_logger
from llmule_bot.utils.exceptions import ConfigurationError
from llmule_bot.bot.client import LLMuleBot


def validate_config(config: AppConfig) -> None:
    """
    Check the settings the bot cannot start without.

    Raises:
        ConfigurationError: If the Discord token or API URL is missing
    """
    if not config.discord.token:
        raise ConfigurationError("DISCORD_TOKEN is not set")
    if not config.llm.api_url:
        raise ConfigurationError("LLM_API_URL is not set")


async def create_bot(config: AppConfig) -> LLMuleBot:
    """
    Create and configure the Discord bot instance.

    Args:
        config: Application configuration

    Returns:
        Configured LLMuleBot instance

    Raises:
        ConfigurationError: If bot cannot be configured
    """
    logger = get_logger(__name__)

    try:
        logger.info("Creating Discord bot instance",
                    llm_url=config.llm.api_url,
                    channel_id=config.discord.channel_id,
                    settings_file=config.conversation.settings_file)

        bot = LLMuleBot(config)
        await bot.setup()

        logger.info("Bot instance created successfully")
        return bot

    except Exception as e:
        logger.error("Failed to create bot instance", error=str(e))
        raise ConfigurationError(
            "Failed to create bot instance",
            context={"error": str(e)},
            original_error=e
        )


async def run_bot(config: AppConfig) -> None:
    """
    Run the Discord bot until it stops or a shutdown signal arrives.

    Args:
        config: Application configuration
    """
    logger = get_logger(__name__)
    bot: Optional[LLMuleBot] = None
    shutdown_event = asyncio.Event()

    try:
        bot = await create_bot(config)

        def signal_handler(signum: int, frame) -> None:
            logger.info("Received shutdown signal", signal=signum)
            shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        logger.info("Starting Discord bot")

        bot_task = asyncio.create_task(bot.start(config.discord.token))
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        done, pending = await asyncio.wait(
            [bot_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED
        )

        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        # Surface login failures and other fatal client errors
        if bot_task in done and bot_task.exception():
            raise bot_task.exception()

    except KeyboardInterrupt:
        logger.info("Bot shutdown requested by user")
    except Exception as e:
        logger.error("Bot encountered fatal error", error=str(e))
        raise
    finally:
        if bot:
            logger.info("Cleaning up bot resources")
            try:
                await asyncio.wait_for(bot.close(), timeout=5.0)
                logger.info("Bot shutdown completed successfully")
            except asyncio.TimeoutError:
                logger.warning("Bot shutdown timed out after 5 seconds, forcing close")
            except Exception as e:
                logger.error("Error during bot shutdown", error=str(e))


async def main_async() -> None:
    """
    Async main function that handles the complete bot lifecycle.

    This function:
    1. Loads configuration
    2. Sets up logging
    3. Creates and runs the bot
    4. Handles shutdown gracefully
    """
    try:
        config = load_config()

        setup_logging(config.logging)
        logger = get_logger(__name__)

        validate_config(config)

        logger.info("LLMule bot starting up",
                    version=__version__,
                    debug_mode=config.debug)

        await run_bot(config)

    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        logger = get_logger(__name__)
        logger.info("LLMule bot shutdown complete")


def main() -> None:
    """
    Main entry point for the LLMule Discord bot.

    Example:
        Command line usage:
        ```bash
        llmule-bot
        ```
    """
    try:
        asyncio.run(main_async())

    except KeyboardInterrupt:
        print("\nBot shutdown requested", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    main()
