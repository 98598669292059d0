"""
Reconnect backoff for relay connections.

The delay before the *n*-th consecutive reconnect attempt is::

    min(initial_delay * factor ** (n - 1), max_delay)

plus an optional additive jitter of up to ``jitter * delay`` (never
shortening the delay and never exceeding ``max_delay``). The failure counter
resets on every successful connect, so the next drop waits ``initial_delay``
again.

See Also:
    [RelayConnection][nostrlink.core.connection.RelayConnection]: Owns one
        [Backoff][nostrlink.core.backoff.Backoff] per relay.
"""

from __future__ import annotations

import random

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class BackoffConfig(BaseModel):
    """Reconnect backoff strategy.

    Attributes:
        initial_delay: Delay before the first reconnect attempt, in seconds.
        factor: Multiplier applied per consecutive failure.
        max_delay: Upper bound on any delay, jitter included.
        jitter: Fraction of the delay added at random (``0`` disables).
        max_attempts: Consecutive failed attempts before giving up and
            settling in ``DISCONNECTED``; ``0`` retries forever.
    """

    initial_delay: float = Field(default=1.0, gt=0.0, description="First reconnect delay")
    factor: float = Field(default=2.0, ge=1.0, description="Growth factor per failure")
    max_delay: float = Field(default=60.0, gt=0.0, description="Maximum reconnect delay")
    jitter: float = Field(default=0.0, ge=0.0, le=1.0, description="Additive jitter fraction")
    max_attempts: int = Field(default=0, ge=0, description="0 = retry forever")

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: ValidationInfo) -> float:
        """Ensure max_delay >= initial_delay."""
        initial_delay = info.data.get("initial_delay", 1.0)
        if v < initial_delay:
            raise ValueError(f"max_delay ({v}) must be >= initial_delay ({initial_delay})")
        return v


class Backoff:
    """Consecutive-failure counter that yields reconnect delays.

    Examples:
        ```python
        backoff = Backoff(BackoffConfig(initial_delay=1.0, factor=2.0))
        [backoff.next_delay() for _ in range(3)]   # [1.0, 2.0, 4.0]
        backoff.reset()
        backoff.next_delay()                       # 1.0
        ```
    """

    def __init__(self, config: BackoffConfig | None = None, rng: random.Random | None = None) -> None:
        self._config = config or BackoffConfig()
        self._rng = rng or random.Random()  # noqa: S311
        self._failures = 0

    @property
    def config(self) -> BackoffConfig:
        return self._config

    @property
    def failures(self) -> int:
        """Consecutive failures recorded since the last reset."""
        return self._failures

    @property
    def exhausted(self) -> bool:
        """True once ``max_attempts`` consecutive failures have been recorded."""
        limit = self._config.max_attempts
        return limit > 0 and self._failures >= limit

    def delay_for(self, failures: int) -> float:
        """Return the un-jittered delay after *failures* consecutive failures."""
        cfg = self._config
        if failures <= 0:
            return 0.0
        exponent = failures - 1
        try:
            delay = cfg.initial_delay * cfg.factor**exponent
        except OverflowError:
            return cfg.max_delay
        return float(min(delay, cfg.max_delay))

    def next_delay(self) -> float:
        """Record one more failure and return the delay before the next attempt."""
        self._failures += 1
        delay = self.delay_for(self._failures)
        if self._config.jitter:
            delay += self._rng.uniform(0.0, self._config.jitter * delay)
        return min(delay, self._config.max_delay)

    def reset(self) -> None:
        """Forget past failures after a successful connect."""
        self._failures = 0
