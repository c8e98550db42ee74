"""
LLMule Discord Bot - relays Discord mentions to an OpenAI-compatible
chat completion API.

The bot answers when mentioned, keeps a short per-channel conversation
history, lets each user pick a model and sampling parameters through
slash commands, accepts one-off `[key:value]` overrides inline, and
rate limits users with a sliding window plus a cooldown.

Example:
    ```python
    from llmule_bot.main import main

    if __name__ == "__main__":
        main()
    ```
"""

__version__ = "0.1.0"


# Imported lazily so the package can be imported without discord.py loaded
def main():
    """Main entry point for the LLMule Discord bot."""
    from llmule_bot.main import main as _main
    return _main()


__all__ = ["main", "__version__"]
