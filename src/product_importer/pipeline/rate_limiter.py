"""Rate limiting utilities for external API calls."""

import asyncio
import math
import time
from typing import Awaitable, Callable, Optional
from ..errors import ConfigurationError
from ..logging_config import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Token bucket rate limiter for async operations.

    ``capacity`` tokens are replenished uniformly over ``window_seconds``, one
    token every ``window_seconds / capacity`` seconds. The bucket starts full.
    """

    def __init__(
        self,
        capacity: int,
        window_seconds: float,
        poll_interval: float = 0.25,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleeper] = None,
    ):
        """
        Initialize rate limiter.

        Args:
            capacity: Maximum tokens in the bucket (requests per window)
            window_seconds: Time in which a full bucket is replenished
            poll_interval: Seconds to sleep between availability checks
            clock: Monotonic time source (defaults to time.monotonic)
            sleep: Async sleep function (defaults to asyncio.sleep)
        """
        if capacity < 1:
            raise ConfigurationError(f"Rate limiter capacity must be at least 1, got {capacity}")
        if window_seconds <= 0:
            raise ConfigurationError(f"Rate limiter window must be positive, got {window_seconds}")
        if poll_interval <= 0:
            raise ConfigurationError(f"Poll interval must be positive, got {poll_interval}")

        self.capacity = capacity
        self.window_seconds = window_seconds
        self.refill_interval = window_seconds / capacity
        self.poll_interval = poll_interval
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self.tokens = float(capacity)
        self.last_refill = self._clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        # Advance by whole tokens only so fractional time is never lost
        elapsed = self._clock() - self.last_refill
        earned = math.floor(elapsed / self.refill_interval)
        if earned > 0:
            self.tokens = min(float(self.capacity), self.tokens + earned)
            self.last_refill += earned * self.refill_interval

    async def wait_for_token(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            self._refill()
            if self.tokens < 1:
                logger.debug(
                    f"Rate limit reached, waiting up to {self.refill_interval:.2f}s for a token"
                )
            while self.tokens < 1:
                await self._sleep(self.poll_interval)
                self._refill()

            self.tokens -= 1

    def available_tokens(self) -> int:
        """Get number of currently available tokens."""
        elapsed = self._clock() - self.last_refill
        earned = math.floor(elapsed / self.refill_interval)
        return int(min(float(self.capacity), self.tokens + max(0, earned)))

    def reset(self) -> None:
        """Reset the rate limiter to a full bucket."""
        self.tokens = float(self.capacity)
        self.last_refill = self._clock()
