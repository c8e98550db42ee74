"""
Per-user rate limiting for inbound chat messages.

Two independent mechanisms live here:

- RateLimiter: a sliding window of message timestamps capped at a
  configurable count, plus a fixed cooldown between two admitted
  messages. Both gates must pass.
- InFlightTracker: a per-user mutual-exclusion flag that rejects (never
  queues) a second message while the first one's completion is running.

All state is in memory and keyed by user identifier. Everything runs on
one event loop, so no locking is needed between await points.
"""

import asyncio
import math
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Deque, Dict, Optional, Set

from llmule_bot.config import RateLimitConfig
from llmule_bot.utils.exceptions import AlreadyProcessingError
from llmule_bot.utils.logging import get_logger, log_rate_limit_event


@dataclass
class RateLimitEntry:
    """Message history of one user."""

    timestamps: Deque[float] = field(default_factory=deque)
    last_processed_at: Optional[float] = None

    def prune(self, now: float, window: float) -> None:
        """Drop timestamps that have left the window."""
        while self.timestamps and now - self.timestamps[0] >= window:
            self.timestamps.popleft()


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Result of an admission check.

    Attributes:
        allowed: Whether the message may be processed
        retry_after: Whole seconds to wait when rejected (0 when allowed)
        reason: "window" or "cooldown" when rejected
    """

    allowed: bool
    retry_after: int = 0
    reason: Optional[str] = None

    @classmethod
    def admit(cls) -> "RateLimitDecision":
        return cls(allowed=True)

    @classmethod
    def reject(cls, remaining_seconds: float, reason: str) -> "RateLimitDecision":
        return cls(allowed=False, retry_after=max(1, math.ceil(remaining_seconds)), reason=reason)


class RateLimiter:
    """
    Sliding-window plus cooldown limiter.

    Attributes:
        config: Rate limit configuration
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the limiter.

        Args:
            config: Message count, window, cooldown and sweep interval
            clock: Monotonic clock in seconds
        """
        self.config = config
        self.logger = get_logger(__name__)
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._entries

    def check(self, user_id: str, now: Optional[float] = None) -> RateLimitDecision:
        """
        Check whether a user may send a message right now.

        Prunes the user's window but never records a message.

        Args:
            user_id: User identifier
            now: Current time in seconds (defaults to the limiter clock)

        Returns:
            The admission decision
        """
        now = self._clock() if now is None else now
        entry = self._entries.get(user_id)
        if entry is None:
            return RateLimitDecision.admit()

        window = self.config.window_seconds
        entry.prune(now, window)

        if len(entry.timestamps) >= self.config.messages:
            oldest = entry.timestamps[0]
            return RateLimitDecision.reject(window - (now - oldest), "window")

        cooldown = self.config.cooldown_seconds
        if entry.last_processed_at is not None and now - entry.last_processed_at < cooldown:
            return RateLimitDecision.reject(cooldown - (now - entry.last_processed_at), "cooldown")

        return RateLimitDecision.admit()

    def admit(self, user_id: str, now: Optional[float] = None) -> None:
        """Record an accepted message. Call exactly once per admitted message."""
        now = self._clock() if now is None else now
        entry = self._entries.setdefault(user_id, RateLimitEntry())
        entry.timestamps.append(now)
        entry.last_processed_at = now

    def check_and_admit(self, user_id: str, now: Optional[float] = None) -> RateLimitDecision:
        """
        Check a user and, when allowed, record the message in one step.

        Rejected calls leave the user's history untouched.
        """
        now = self._clock() if now is None else now
        decision = self.check(user_id, now)
        if decision.allowed:
            self.admit(user_id, now)
        else:
            log_rate_limit_event(user_id, decision.reason, decision.retry_after)
        return decision

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Evict users whose window is empty.

        Returns:
            Number of entries removed
        """
        now = self._clock() if now is None else now
        window = self.config.window_seconds
        idle = []
        for user_id, entry in self._entries.items():
            entry.prune(now, window)
            if not entry.timestamps:
                idle.append(user_id)
        for user_id in idle:
            del self._entries[user_id]
        if idle:
            self.logger.debug("Swept idle rate limit entries", removed=len(idle), remaining=len(self._entries))
        return len(idle)

    def reset(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def start_sweeper(self) -> None:
        """Run sweep() periodically on the current event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    async def _sweep_forever(self) -> None:
        interval = self.config.effective_sweep_interval
        while True:
            await asyncio.sleep(interval)
            self.sweep()


class InFlightTracker:
    """Per-user "currently processing" flags."""

    def __init__(self) -> None:
        self._processing: Set[str] = set()

    def __len__(self) -> int:
        return len(self._processing)

    def is_processing(self, user_id: str) -> bool:
        return user_id in self._processing

    def try_acquire(self, user_id: str) -> bool:
        """Mark a user as in flight. False if they already were."""
        if user_id in self._processing:
            return False
        self._processing.add(user_id)
        return True

    def release(self, user_id: str) -> None:
        self._processing.discard(user_id)

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        """
        Hold the user's flag for the duration of the block.

        Raises:
            AlreadyProcessingError: If the user is already in flight
        """
        if not self.try_acquire(user_id):
            log_rate_limit_event(user_id, "in_flight")
            raise AlreadyProcessingError(user_id)
        try:
            yield
        finally:
            self.release(user_id)
