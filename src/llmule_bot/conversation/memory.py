"""
Per-channel conversation memory for the LLMule Discord bot.

Each channel keeps an ordered list of user/assistant turns. After every
exchange the list is trimmed from the front so that at most `memory`
exchanges (2 x memory turns) remain, where `memory` is the acting user's
setting. Eviction is strictly oldest-first. History lives only in memory
and is lost on restart.
"""

from typing import Dict, List

from llmule_bot.llm.models import ChatMessage, MessageRole
from llmule_bot.utils.logging import get_logger, log_conversation_event


class ConversationMemory:
    """Rolling history keyed by channel identifier."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self._history: Dict[str, List[ChatMessage]] = {}

    def __len__(self) -> int:
        return len(self._history)

    def __contains__(self, channel_id: str) -> bool:
        return channel_id in self._history

    def get(self, channel_id: str) -> List[ChatMessage]:
        """A copy of the channel's turns, oldest first."""
        return list(self._history.get(channel_id, ()))

    def append(
        self,
        channel_id: str,
        user_content: str,
        assistant_content: str,
        memory: int,
    ) -> List[ChatMessage]:
        """
        Record one exchange and trim the channel to `memory` exchanges.

        Args:
            channel_id: Channel identifier
            user_content: The user's (directive-free) message
            assistant_content: The assistant's reply
            memory: Exchanges to keep, from the acting user's settings

        Returns:
            The channel history after trimming
        """
        history = self._history.setdefault(channel_id, [])
        history.append(ChatMessage(role=MessageRole.USER, content=user_content))
        history.append(ChatMessage(role=MessageRole.ASSISTANT, content=assistant_content))

        limit = max(1, memory) * 2
        if len(history) > limit:
            del history[: len(history) - limit]

        return list(history)

    def clear(self, channel_id: str) -> bool:
        """
        Forget a channel's history.

        Returns:
            True if there was anything to forget
        """
        removed = self._history.pop(channel_id, None) is not None
        log_conversation_event("history_cleared", channel_id=channel_id, had_history=removed)
        return removed

    def clear_all(self) -> int:
        """Forget every channel. Returns the number of channels cleared."""
        count = len(self._history)
        self._history.clear()
        self.logger.info("Cleared all conversation history", channels=count)
        return count
