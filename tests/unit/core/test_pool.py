"""
Unit tests for core.pool module.

Tests:
- RelayPoolConfig normalization and YAML/dict construction
- connect() per-relay results
- publish() and subscribe() per-relay outcomes (sent, queued, failed)
- Subscription registry updates from EOSE, CLOSED, and connection loss
- Event de-duplication across relays
- Relay add/remove and close()
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from fixtures.channels import FakeChannelFactory, settle
from nostrlink.core.connection import (
    EventRejected,
    MessageReceived,
    RelayConnectionConfig,
    StateChanged,
)
from nostrlink.core.exceptions import StructuralInvalidError
from nostrlink.core.pool import (
    OutcomeStatus,
    ReceivedEvent,
    RelayOutcome,
    RelayPool,
    RelayPoolConfig,
)
from nostrlink.core.stream import UpdateStream
from nostrlink.models import ConnectionState, Event, Filter


A = "wss://a.example.com"
B = "wss://b.example.com"


async def _eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


async def _take(stream: UpdateStream, count: int) -> list[Any]:
    items: list[Any] = []
    async with asyncio.timeout(1.0):
        async for item in stream:
            items.append(item)
            if len(items) == count:
                break
    return items


def _event_frame(sub_id: str, event: Event) -> str:
    return json.dumps(["EVENT", sub_id, event.to_dict()])


@pytest.fixture
async def pool(channel_factory: FakeChannelFactory, fast_config: RelayConnectionConfig):
    pool = RelayPool(
        RelayPoolConfig(relays=[A, B], connection=fast_config),
        channel_factory=channel_factory,
    )
    yield pool
    await pool.close()


# =============================================================================
# Configuration Tests
# =============================================================================


class TestRelayPoolConfig:
    """RelayPoolConfig validation and construction helpers."""

    def test_defaults(self) -> None:
        config = RelayPoolConfig()
        assert config.relays == []
        assert config.deduplicate_events is True
        assert config.dedup_cache_size == 10_000
        assert config.metrics.enabled is False

    def test_relays_normalized_and_deduplicated(self) -> None:
        config = RelayPoolConfig(relays=["ws://A.example.com/", A, B])
        assert config.relays == [A, B]

    def test_invalid_relay(self) -> None:
        with pytest.raises(ValidationError):
            RelayPoolConfig(relays=["https://not-a-relay.example.com"])

    def test_dedup_cache_size_positive(self) -> None:
        with pytest.raises(ValidationError):
            RelayPoolConfig(dedup_cache_size=0)

    def test_from_dict(self) -> None:
        pool = RelayPool.from_dict(
            {
                "relays": [A],
                "connection": {"queue": {"max_size": 5}, "verify_signatures": False},
            }
        )
        assert pool.relay_urls == [A]
        assert pool.config.connection.queue.max_size == 5
        assert pool.get_connection(A).config.verify_signatures is False

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "pool.yaml"
        path.write_text(
            f"relays:\n  - {A}\n  - {B}\ndeduplicate_events: false\n", encoding="utf-8"
        )
        pool = RelayPool.from_yaml(str(path))
        assert pool.relay_urls == [A, B]
        assert pool.config.deduplicate_events is False


# =============================================================================
# Relay Management Tests
# =============================================================================


class TestRelayManagement:
    """add_relay(), remove_relay(), and lookups."""

    async def test_add_existing_returns_same(self, pool: RelayPool) -> None:
        assert pool.add_relay("wss://A.example.com") is pool.get_connection(A)
        assert pool.relay_urls == [A, B]

    async def test_add_invalid(self, pool: RelayPool) -> None:
        with pytest.raises(ValueError):
            pool.add_relay("not a url")

    async def test_get_state(self, pool: RelayPool) -> None:
        assert pool.get_state(A) is ConnectionState.DISCONNECTED

    async def test_unknown_relay(self, pool: RelayPool) -> None:
        with pytest.raises(KeyError):
            pool.get_state("wss://unknown.example.com")

    async def test_remove_relay(self, pool: RelayPool) -> None:
        conn = pool.get_connection(A)
        assert await pool.remove_relay(A) is True
        assert conn.state is ConnectionState.CLOSED
        assert pool.relay_urls == [B]
        assert await pool.remove_relay(A) is False


# =============================================================================
# Lifecycle Tests
# =============================================================================


class TestLifecycle:
    """connect() and close()."""

    async def test_connect_reports_each_relay(
        self, pool: RelayPool, channel_factory: FakeChannelFactory
    ) -> None:
        channel_factory.unreachable.add(B)
        assert await pool.connect() == {A: True, B: False}
        assert pool.connected_relays() == [A]
        assert pool.metrics_server.is_running is False

    async def test_observe_forwards_updates(self, pool: RelayPool) -> None:
        updates = pool.observe()
        await pool.connect()
        await pool.close()
        received = [u async for u in updates]
        connected = {
            u.relay_url
            for u in received
            if isinstance(u, StateChanged) and u.current is ConnectionState.CONNECTED
        }
        assert connected == {A, B}

    async def test_close(self, pool: RelayPool) -> None:
        events = pool.events()
        await pool.connect()
        sub, _ = await pool.subscribe(Filter(kinds=(1,)))
        await pool.close()
        await pool.close()

        assert pool.get_state(A) is ConnectionState.CLOSED
        assert pool.get_state(B) is ConnectionState.CLOSED
        assert sub.active_relays == set()
        assert [e async for e in events] == []

    async def test_context_manager(
        self, channel_factory: FakeChannelFactory, fast_config: RelayConnectionConfig
    ) -> None:
        config = RelayPoolConfig(relays=[A], connection=fast_config)
        async with RelayPool(config, channel_factory=channel_factory) as pool:
            assert pool.connected_relays() == [A]
        assert pool.get_state(A) is ConnectionState.CLOSED


# =============================================================================
# Publish Tests
# =============================================================================


class TestPublish:
    """publish() fan-out."""

    async def test_outcomes(
        self,
        pool: RelayPool,
        channel_factory: FakeChannelFactory,
        signed_event: Event,
    ) -> None:
        channel_factory.unreachable.add(B)
        pool.add_relay("wss://c.example.com")
        await pool.connect()
        await pool.get_connection("wss://c.example.com").close()

        outcomes = await pool.publish(signed_event)

        assert outcomes[A] == RelayOutcome(A, OutcomeStatus.SENT)
        assert outcomes[B] == RelayOutcome(B, OutcomeStatus.QUEUED)
        failed = outcomes["wss://c.example.com"]
        assert failed.status is OutcomeStatus.FAILED
        assert failed.ok is False
        assert "closed" in failed.error
        assert json.loads(channel_factory.latest(A).sent[-1])[0] == "EVENT"
        assert pool.get_connection(B).queue_size == 1

    async def test_invalid_event_not_sent(
        self, pool: RelayPool, channel_factory: FakeChannelFactory, event_dict: dict[str, Any]
    ) -> None:
        await pool.connect()
        tampered = Event.from_dict({**event_dict, "content": "edited"})
        with pytest.raises(StructuralInvalidError, match="Event ID does not match"):
            await pool.publish(tampered)
        await settle()
        assert channel_factory.latest(A).sent == []


# =============================================================================
# Subscription Tests
# =============================================================================


class TestSubscribe:
    """Subscription registry."""

    async def test_marks_sent_and_queued_relays_active(
        self, pool: RelayPool, channel_factory: FakeChannelFactory
    ) -> None:
        channel_factory.unreachable.add(B)
        await pool.connect()
        sub, outcomes = await pool.subscribe(Filter(kinds=(1,)), subscription_id="sub_1")

        assert sub.id == "sub_1"
        assert outcomes[A].status is OutcomeStatus.SENT
        assert outcomes[B].status is OutcomeStatus.QUEUED
        assert sub.active_relays == {A, B}
        assert pool.subscriptions["sub_1"] is sub

    async def test_generated_id(self, pool: RelayPool) -> None:
        sub, _ = await pool.subscribe(Filter(kinds=(1,)))
        assert sub.id in pool.subscriptions

    async def test_duplicate_id(self, pool: RelayPool) -> None:
        await pool.subscribe(Filter(kinds=(1,)), subscription_id="sub_1")
        with pytest.raises(ValueError, match="already registered"):
            await pool.subscribe(Filter(kinds=(1,)), subscription_id="sub_1")

    async def test_invalid_filter(self, pool: RelayPool) -> None:
        with pytest.raises(StructuralInvalidError, match="limit"):
            await pool.subscribe(Filter(limit=0), subscription_id="sub_1")
        assert "sub_1" not in pool.subscriptions

    async def test_eose_marks_relay(
        self, pool: RelayPool, channel_factory: FakeChannelFactory
    ) -> None:
        await pool.connect()
        sub, _ = await pool.subscribe(Filter(kinds=(1,)), subscription_id="sub_1")

        channel_factory.latest(A).feed('["EOSE","sub_1"]')
        await _eventually(lambda: A in sub.eose_relays)
        assert sub.is_complete is False

        channel_factory.latest(B).feed('["EOSE","sub_1"]')
        await _eventually(lambda: sub.is_complete)

    async def test_closed_marks_inactive(
        self, pool: RelayPool, channel_factory: FakeChannelFactory
    ) -> None:
        await pool.connect()
        sub, _ = await pool.subscribe(Filter(kinds=(1,)), subscription_id="sub_1")

        channel_factory.latest(A).feed('["CLOSED","sub_1","auth-required: sign in"]')
        await _eventually(lambda: sub.active_relays == {B})

    async def test_connection_loss_marks_inactive(
        self, pool: RelayPool, channel_factory: FakeChannelFactory
    ) -> None:
        await pool.connect()
        sub, _ = await pool.subscribe(Filter(kinds=(1,)), subscription_id="sub_1")

        channel_factory.latest(A).drop()
        await _eventually(lambda: sub.active_relays == {B})

    async def test_queued_subscription_stays_active(
        self, pool: RelayPool, channel_factory: FakeChannelFactory
    ) -> None:
        channel_factory.unreachable.add(B)
        await pool.connect()
        sub, _ = await pool.subscribe(Filter(kinds=(1,)), subscription_id="sub_1")
        await asyncio.sleep(0.01)
        assert B in sub.active_relays

    async def test_unsubscribe(
        self, pool: RelayPool, channel_factory: FakeChannelFactory
    ) -> None:
        await pool.connect()
        await pool.subscribe(Filter(kinds=(1,)), subscription_id="sub_1")
        outcomes = await pool.unsubscribe("sub_1")

        assert all(outcome.status is OutcomeStatus.SENT for outcome in outcomes.values())
        assert channel_factory.latest(A).sent[-1] == '["CLOSE","sub_1"]'
        assert "sub_1" not in pool.subscriptions


# =============================================================================
# Event Delivery Tests
# =============================================================================


class TestEvents:
    """events() stream and de-duplication."""

    async def test_duplicates_dropped(
        self,
        pool: RelayPool,
        channel_factory: FakeChannelFactory,
        make_event: Callable[..., Event],
    ) -> None:
        events = pool.events()
        await pool.connect()
        first, second = make_event("one"), make_event("two")

        channel_factory.latest(A).feed(_event_frame("sub_1", first))
        channel_factory.latest(B).feed(_event_frame("sub_1", first))
        channel_factory.latest(B).feed(_event_frame("sub_1", second))

        received = await _take(events, 2)
        assert {r.event.id for r in received} == {first.id, second.id}
        assert all(isinstance(r, ReceivedEvent) for r in received)
        await settle()
        assert events.pending == 0

    async def test_deduplication_disabled(
        self,
        channel_factory: FakeChannelFactory,
        fast_config: RelayConnectionConfig,
        signed_event: Event,
    ) -> None:
        config = RelayPoolConfig(
            relays=[A, B], connection=fast_config, deduplicate_events=False
        )
        pool = RelayPool(config, channel_factory=channel_factory)
        events = pool.events()
        await pool.connect()

        channel_factory.latest(A).feed(_event_frame("sub_1", signed_event))
        channel_factory.latest(B).feed(_event_frame("sub_1", signed_event))

        received = await _take(events, 2)
        assert {r.relay_url for r in received} == {A, B}
        await pool.close()

    async def test_cache_evicts_oldest(
        self,
        channel_factory: FakeChannelFactory,
        fast_config: RelayConnectionConfig,
        make_event: Callable[..., Event],
    ) -> None:
        config = RelayPoolConfig(relays=[A], connection=fast_config, dedup_cache_size=1)
        pool = RelayPool(config, channel_factory=channel_factory)
        events = pool.events()
        await pool.connect()
        first, second = make_event("one"), make_event("two")
        channel = channel_factory.latest(A)

        channel.feed(_event_frame("sub_1", first))
        channel.feed(_event_frame("sub_1", second))
        channel.feed(_event_frame("sub_1", first))

        received = await _take(events, 3)
        assert [r.event.id for r in received] == [first.id, second.id, first.id]
        await pool.close()

    async def test_rejected_event_not_delivered(
        self,
        pool: RelayPool,
        channel_factory: FakeChannelFactory,
        event_dict: dict[str, Any],
        make_event: Callable[..., Event],
    ) -> None:
        events = pool.events()
        updates = pool.observe()
        await pool.connect()
        valid = make_event("valid")
        channel = channel_factory.latest(A)
        channel.feed(json.dumps(["EVENT", "sub_1", {**event_dict, "content": "edited"}]))
        channel.feed(_event_frame("sub_1", valid))

        (received,) = await _take(events, 1)
        assert received.event.id == valid.id
        # two relays connecting and connected, then one rejection and one message
        kinds = [type(u) for u in await _take(updates, 6)]
        assert kinds.count(EventRejected) == 1
        assert kinds.count(MessageReceived) == 1
