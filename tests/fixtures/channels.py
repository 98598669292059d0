"""In-memory relay channels shared across connection and pool tests.

Usage: Registered via ``pytest_plugins`` in the root ``conftest.py``.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict

import pytest

from nostrlink.core.backoff import BackoffConfig
from nostrlink.core.connection import RelayConnectionConfig
from nostrlink.core.exceptions import TransportError
from nostrlink.models.relay import Relay


class FakeChannel:
    """Channel whose inbound frames are fed by the test."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.sent: list[str] = []
        self.fail_sends = 0
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, text: str) -> None:
        if self._closed:
            raise TransportError("channel is closed")
        if self.fail_sends:
            self.fail_sends -= 1
            raise TransportError("broken pipe")
        self.sent.append(text)

    async def receive(self) -> str | None:
        if self._closed and self._inbox.empty():
            return None
        return await self._inbox.get()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._inbox.put_nowait(None)

    def feed(self, text: str) -> None:
        """Deliver an inbound frame."""
        self._inbox.put_nowait(text)

    def drop(self) -> None:
        """Simulate the relay going away."""
        self._closed = True
        self._inbox.put_nowait(None)


class FakeChannelFactory:
    """Channel factory recording every attempt.

    Selected URLs can be made to fail, to raise an unexpected error, or to hand
    out channels that are already dropped.
    """

    def __init__(self) -> None:
        self.attempts: dict[str, int] = defaultdict(int)
        self.channels: dict[str, list[FakeChannel]] = defaultdict(list)
        self.failures: dict[str, int] = defaultdict(int)
        self.unreachable: set[str] = set()
        self.dead_on_arrival: dict[str, int] = defaultdict(int)
        self.crashes: dict[str, int] = defaultdict(int)

    async def __call__(self, relay: Relay) -> FakeChannel:
        self.attempts[relay.url] += 1
        if relay.url in self.unreachable:
            raise TransportError(f"connection refused: {relay.url}")
        if self.failures[relay.url]:
            self.failures[relay.url] -= 1
            raise TransportError(f"connection refused: {relay.url}")
        if self.crashes[relay.url]:
            self.crashes[relay.url] -= 1
            raise RuntimeError("factory bug")
        channel = FakeChannel(relay.url)
        self.channels[relay.url].append(channel)
        if self.dead_on_arrival[relay.url]:
            self.dead_on_arrival[relay.url] -= 1
            channel.drop()
        return channel

    def latest(self, url: str) -> FakeChannel:
        return self.channels[url][-1]


async def settle(rounds: int = 10) -> None:
    """Let pending tasks (flush, forwarders) run to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def channel_factory() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture
def fast_config() -> RelayConnectionConfig:
    """Connection config with millisecond backoff so reconnect tests do not sleep."""
    return RelayConnectionConfig(
        backoff=BackoffConfig(initial_delay=0.001, factor=1.0, max_delay=0.001),
    )
