"""Per-user rate limiting and in-flight tracking."""

from llmule_bot.ratelimit.limiter import (
    InFlightTracker,
    RateLimitDecision,
    RateLimiter,
)

__all__ = ["InFlightTracker", "RateLimitDecision", "RateLimiter"]
