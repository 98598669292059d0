"""
Token-bucket rate limiting for outbound frames.

A bucket holds up to ``capacity`` tokens and regains ``refill_rate`` tokens
per second. Each frame sent costs one token. When the bucket is empty, the
[RateLimitPolicy][nostrlink.core.ratelimit.RateLimitPolicy] decides: ``queue``
waits (FIFO, since the connection serializes sends under one lock) and
``reject`` raises [RateLimitedError][nostrlink.core.exceptions.RateLimitedError].

The clock is injectable so tests can drive refills without sleeping.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel, Field

from .exceptions import RateLimitedError


class RateLimitPolicy(StrEnum):
    """What to do with a send that finds the bucket empty."""

    QUEUE = "queue"
    REJECT = "reject"


class RateLimitConfig(BaseModel):
    """Outbound rate limit per relay connection.

    Attributes:
        capacity: Burst size (maximum tokens).
        refill_rate: Tokens regained per second.
        policy: ``queue`` to wait for a token, ``reject`` to fail fast.
    """

    capacity: int = Field(default=20, ge=1, description="Maximum burst of frames")
    refill_rate: float = Field(default=10.0, gt=0.0, description="Frames per second")
    policy: RateLimitPolicy = Field(default=RateLimitPolicy.QUEUE, description="Empty-bucket policy")


class TokenBucket:
    """Token bucket starting full.

    Not thread-safe; owned by a single connection on a single event loop.

    Examples:
        ```python
        bucket = TokenBucket(capacity=2, refill_rate=1.0)
        bucket.try_acquire()   # True
        bucket.try_acquire()   # True
        bucket.try_acquire()   # False
        bucket.wait_time()     # ~1.0
        ```
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")
        self._capacity = float(capacity)
        self._refill_rate = refill_rate
        self._clock = clock
        self._tokens = float(capacity)
        self._updated_at = clock()

    @classmethod
    def from_config(
        cls, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic
    ) -> TokenBucket:
        return cls(config.capacity, config.refill_rate, clock)

    @property
    def tokens(self) -> float:
        """Tokens currently available, after refilling for elapsed time."""
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._refill_rate)
        self._updated_at = now

    def try_acquire(self) -> bool:
        """Take one token if available; return whether it was taken."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    def wait_time(self) -> float:
        """Seconds until one token becomes available (``0.0`` if one is)."""
        self._refill()
        if self._tokens >= 1.0:
            return 0.0
        return (1.0 - self._tokens) / self._refill_rate

    async def acquire(self, policy: RateLimitPolicy = RateLimitPolicy.QUEUE) -> None:
        """Take one token, waiting or raising per *policy*.

        Raises:
            RateLimitedError: If the bucket is empty and *policy* is ``reject``.
        """
        while not self.try_acquire():
            if policy is RateLimitPolicy.REJECT:
                raise RateLimitedError(
                    f"rate limit exceeded, next token in {self.wait_time():.2f}s"
                )
            await asyncio.sleep(self.wait_time())
