"""
Multi-relay pool built on [RelayConnection][nostrlink.core.connection.RelayConnection].

The pool owns one connection per relay URL, fans ``publish`` and ``subscribe``
out to all of them concurrently, and reports a per-relay
[RelayOutcome][nostrlink.core.pool.RelayOutcome] so that partial failure is
visible to the caller instead of being raised. Inbound updates from every
connection are forwarded, per relay in arrival order, to
[observe()][nostrlink.core.pool.RelayPool.observe]; validated events are also
published to [events()][nostrlink.core.pool.RelayPool.events], optionally
de-duplicated by event id across relays.

The pool keeps a registry of [Subscription][nostrlink.models.subscription.Subscription]
records: ``EOSE`` marks a relay as caught up, ``CLOSED`` and connection loss
remove the relay from the subscription's active set.

Examples:
    ```python
    pool = RelayPool.from_yaml("config.yaml")

    async with pool:
        events = pool.events()
        sub, outcomes = await pool.subscribe(Filter(kinds=(1,), limit=20))
        async for received in events:
            print(received.relay_url, received.event.content)
    ```

See Also:
    [RelayPoolConfig][nostrlink.core.pool.RelayPoolConfig]: Aggregate
        configuration for the pool.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

from nostrlink.models.constants import ConnectionState
from nostrlink.models.message import ClosedMessage, EndOfStoredEventsMessage, EventMessage
from nostrlink.models.relay import Relay
from nostrlink.models.subscription import Subscription
from nostrlink.nips.nip01.signature import SignatureService
from nostrlink.nips.nip01.validation import validate_event, validate_filter

from .connection import (
    ConnectionUpdate,
    MessageReceived,
    RelayConnection,
    RelayConnectionConfig,
    StateChanged,
)
from .exceptions import ConnectivityError
from .logger import Logger
from .metrics import MetricsConfig, MetricsServer
from .stream import Broadcaster, UpdateStream
from .yaml import load_yaml


if TYPE_CHECKING:
    import random
    from collections.abc import Awaitable

    from nostrlink.models.event import Event
    from nostrlink.models.filter import Filter
    from nostrlink.utils.transport import ChannelFactory


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RelayPoolConfig(BaseModel):
    """Aggregate configuration for [RelayPool][nostrlink.core.pool.RelayPool].

    Attributes:
        relays: Relay URLs; normalized and de-duplicated on load.
        connection: Settings applied to every relay connection.
        deduplicate_events: Deliver each event id once across relays.
        dedup_cache_size: Event ids remembered for de-duplication.
        metrics: Prometheus endpoint settings.

    Examples:
        ```yaml
        relays:
          - wss://relay.damus.io
          - wss://nos.lol
        connection:
          backoff:
            initial_delay: 1.0
            max_delay: 60.0
          rate_limit:
            capacity: 20
            refill_rate: 10.0
        deduplicate_events: true
        ```
    """

    relays: list[str] = Field(default_factory=list)
    connection: RelayConnectionConfig = Field(default_factory=RelayConnectionConfig)
    deduplicate_events: bool = Field(default=True, description="Drop repeated event ids")
    dedup_cache_size: int = Field(default=10_000, ge=1, description="Remembered event ids")
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @field_validator("relays")
    @classmethod
    def normalize_relays(cls, v: list[str]) -> list[str]:
        """Parse every URL and drop duplicates, keeping first-seen order."""
        urls: list[str] = []
        for raw in v:
            url = Relay(raw).url
            if url not in urls:
                urls.append(url)
        return urls


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class OutcomeStatus(StrEnum):
    """Result of handing one frame to one relay connection."""

    SENT = "sent"
    QUEUED = "queued"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RelayOutcome:
    """Per-relay result of a fan-out operation.

    Attributes:
        relay_url: Relay the frame was handed to.
        status: ``sent`` (written), ``queued`` (offline), or ``failed``.
        error: Failure description when ``status`` is ``failed``.
    """

    relay_url: str
    status: OutcomeStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED


@dataclass(frozen=True, slots=True)
class ReceivedEvent:
    """A validated event delivered by a relay for a subscription."""

    relay_url: str
    subscription_id: str
    event: Event


# ---------------------------------------------------------------------------
# RelayPool
# ---------------------------------------------------------------------------


class RelayPool:
    """Set of relay connections with concurrent fan-out and merged inbound streams.

    Args:
        config: Pool configuration; defaults to an empty pool.
        channel_factory: Passed to every connection (tests inject fakes).
        signatures: Shared signature service for inbound verification.
        clock: Monotonic clock for every connection's token bucket.
        rng: Random source for backoff jitter.

    See Also:
        [from_yaml()][nostrlink.core.pool.RelayPool.from_yaml]: Construct from
            a YAML file.
    """

    def __init__(
        self,
        config: RelayPoolConfig | None = None,
        *,
        channel_factory: ChannelFactory | None = None,
        signatures: SignatureService | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or RelayPoolConfig()
        self._channel_factory = channel_factory
        self._signatures = signatures or SignatureService()
        self._clock = clock
        self._rng = rng
        self._logger = Logger("nostrlink.pool")

        self._connections: dict[str, RelayConnection] = {}
        self._streams: dict[str, UpdateStream[ConnectionUpdate]] = {}
        self._forwarders: dict[str, asyncio.Task[None]] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._updates: Broadcaster[ConnectionUpdate] = Broadcaster()
        self._events: Broadcaster[ReceivedEvent] = Broadcaster()
        self._metrics_server = MetricsServer(self._config.metrics)
        self._closed = False

        for url in self._config.relays:
            self.add_relay(url)

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> RelayPool:
        """Create a pool from a YAML configuration file.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the YAML is malformed.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], **kwargs: Any) -> RelayPool:
        """Create a pool from a dictionary matching [RelayPoolConfig][nostrlink.core.pool.RelayPoolConfig]."""
        return cls(config=RelayPoolConfig(**config_dict), **kwargs)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> RelayPoolConfig:
        return self._config

    @property
    def relay_urls(self) -> list[str]:
        return list(self._connections)

    @property
    def subscriptions(self) -> Mapping[str, Subscription]:
        return MappingProxyType(self._subscriptions)

    @property
    def metrics_server(self) -> MetricsServer:
        return self._metrics_server

    def connected_relays(self) -> list[str]:
        """URLs of relays currently in ``CONNECTED``."""
        return [url for url, conn in self._connections.items() if conn.is_connected]

    def get_connection(self, url: str) -> RelayConnection:
        """Return the connection for *url*.

        Raises:
            KeyError: If the relay is not in the pool.
        """
        key = self._key(url)
        if key not in self._connections:
            raise KeyError(f"relay not in pool: {url}")
        return self._connections[key]

    def get_state(self, url: str) -> ConnectionState:
        """Return the connection state of *url*.

        Raises:
            KeyError: If the relay is not in the pool.
        """
        return self.get_connection(url).state

    def observe(self) -> UpdateStream[ConnectionUpdate]:
        """Stream of every update from every connection."""
        return self._updates.subscribe()

    def events(self) -> UpdateStream[ReceivedEvent]:
        """Stream of validated events, de-duplicated when configured."""
        return self._events.subscribe()

    # -------------------------------------------------------------------------
    # Relay Management
    # -------------------------------------------------------------------------

    def add_relay(self, url: str) -> RelayConnection:
        """Add a relay (not connected yet) and return its connection.

        Adding a URL already in the pool returns the existing connection.

        Raises:
            ValueError: If the URL is not a valid relay URL.
        """
        relay = Relay(url)
        existing = self._connections.get(relay.url)
        if existing is not None:
            return existing

        conn = RelayConnection(
            relay,
            self._config.connection,
            channel_factory=self._channel_factory,
            signatures=self._signatures,
            clock=self._clock,
            rng=self._rng,
        )
        self._connections[relay.url] = conn
        self._streams[relay.url] = conn.observe()
        self._start_forwarder(relay.url)
        self._logger.debug("relay_added", relay=relay.url)
        return conn

    async def remove_relay(self, url: str) -> bool:
        """Close and forget a relay. Returns False if it was not in the pool."""
        key = self._key(url)
        conn = self._connections.pop(key, None)
        if conn is None:
            return False
        await conn.close()
        self._streams.pop(key, None)
        forwarder = self._forwarders.pop(key, None)
        if forwarder is not None:
            await asyncio.gather(forwarder, return_exceptions=True)
        for sub in self._subscriptions.values():
            sub.mark_inactive(key)
        self._logger.info("relay_removed", relay=key)
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> dict[str, bool]:
        """Connect every relay concurrently.

        Returns:
            ``{url: connected}`` for the first attempt of each relay. Relays
            that failed keep retrying in the background.
        """
        await self._metrics_server.start()
        for url in self._connections:
            self._start_forwarder(url)

        urls = list(self._connections)
        results = await asyncio.gather(*(self._connections[url].connect() for url in urls))
        outcome = dict(zip(urls, results, strict=True))
        self._logger.info(
            "pool_connected", connected=sum(results), total=len(urls)
        )
        return outcome

    async def close(self) -> None:
        """Close every connection, end every stream, and stop the metrics server. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await asyncio.gather(*(conn.close() for conn in self._connections.values()))
        if self._forwarders:
            await asyncio.gather(*self._forwarders.values(), return_exceptions=True)
        self._forwarders.clear()
        for sub in self._subscriptions.values():
            sub.active_relays.clear()
            sub.eose_relays.clear()
        self._updates.close()
        self._events.close()
        await self._metrics_server.stop()
        self._logger.info("pool_closed", relays=len(self._connections))

    async def __aenter__(self) -> RelayPool:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Fan-out Operations
    # -------------------------------------------------------------------------

    async def publish(self, event: Event) -> dict[str, RelayOutcome]:
        """Send an event to every relay concurrently.

        Raises:
            StructuralInvalidError: If the event fails structural or identity
                validation (nothing is sent).
        """
        validate_event(event).raise_for_failure()
        outcomes = await self._fan_out(lambda conn: conn.publish(event))
        self._logger.info(
            "event_published",
            event_id=event.id,
            sent=_count(outcomes, OutcomeStatus.SENT),
            queued=_count(outcomes, OutcomeStatus.QUEUED),
            failed=_count(outcomes, OutcomeStatus.FAILED),
        )
        return outcomes

    async def subscribe(
        self, filter: Filter, subscription_id: str | None = None  # noqa: A002
    ) -> tuple[Subscription, dict[str, RelayOutcome]]:
        """Register a subscription and send its REQ to every relay.

        Returns:
            The registered subscription and the per-relay outcome. Relays
            that accepted (or queued) the REQ are marked active.

        Raises:
            StructuralInvalidError: If the filter is not well-formed.
            ValueError: If *subscription_id* is already registered.
        """
        validate_filter(filter).raise_for_failure(subscription_id)
        sub = (
            Subscription(filter, id=subscription_id)
            if subscription_id is not None
            else Subscription(filter)
        )
        if sub.id in self._subscriptions:
            raise ValueError(f"subscription already registered: {sub.id}")
        self._subscriptions[sub.id] = sub

        outcomes = await self._fan_out(lambda conn: conn.subscribe(sub.id, filter))
        for url, outcome in outcomes.items():
            if outcome.ok:
                sub.mark_active(url)
        self._logger.info("subscribed", subscription=sub.id, active=len(sub.active_relays))
        return sub, outcomes

    async def unsubscribe(self, subscription_id: str) -> dict[str, RelayOutcome]:
        """Send ``CLOSE`` everywhere and drop the subscription from the registry."""
        sub = self._subscriptions.pop(subscription_id, None)
        if sub is not None:
            sub.active_relays.clear()
            sub.eose_relays.clear()
        outcomes = await self._fan_out(lambda conn: conn.unsubscribe(subscription_id))
        self._logger.info("unsubscribed", subscription=subscription_id)
        return outcomes

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _key(self, url: str) -> str:
        if url in self._connections:
            return url
        try:
            return Relay(url).url
        except ValueError:
            return url

    async def _fan_out(
        self, send: Callable[[RelayConnection], Awaitable[bool]]
    ) -> dict[str, RelayOutcome]:
        conns = list(self._connections.values())
        results = await asyncio.gather(*(self._attempt(conn, send) for conn in conns))
        return {outcome.relay_url: outcome for outcome in results}

    async def _attempt(
        self, conn: RelayConnection, send: Callable[[RelayConnection], Awaitable[bool]]
    ) -> RelayOutcome:
        try:
            written = await send(conn)
        except ConnectivityError as e:
            self._logger.warning("relay_send_failed", relay=conn.url, error=str(e))
            return RelayOutcome(conn.url, OutcomeStatus.FAILED, str(e))
        return RelayOutcome(conn.url, OutcomeStatus.SENT if written else OutcomeStatus.QUEUED)

    def _start_forwarder(self, url: str) -> None:
        """Start forwarding updates of *url* once an event loop is running."""
        if url in self._forwarders:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._forwarders[url] = asyncio.create_task(
            self._forward(url, self._streams[url]), name=f"pool-forward:{url}"
        )

    async def _forward(self, url: str, stream: UpdateStream[ConnectionUpdate]) -> None:
        async for update in stream:
            self._apply(url, update)
            self._updates.publish(update)

    def _apply(self, url: str, update: ConnectionUpdate) -> None:
        if isinstance(update, StateChanged):
            if update.previous is ConnectionState.CONNECTED:
                self._on_connection_lost(url)
            return
        if not isinstance(update, MessageReceived):
            return

        message = update.message
        if isinstance(message, EventMessage):
            self._deliver(url, message)
        elif isinstance(message, EndOfStoredEventsMessage):
            sub = self._subscriptions.get(message.subscription_id)
            if sub is not None:
                sub.mark_eose(url)
        elif isinstance(message, ClosedMessage):
            sub = self._subscriptions.get(message.subscription_id)
            if sub is not None:
                sub.mark_inactive(url)

    def _on_connection_lost(self, url: str) -> None:
        conn = self._connections.get(url)
        live = conn.subscriptions if conn is not None else {}
        for sub in self._subscriptions.values():
            if sub.id not in live:
                sub.mark_inactive(url)

    def _deliver(self, url: str, message: EventMessage) -> None:
        event_id = message.event.id.lower()
        if self._config.deduplicate_events:
            if event_id in self._seen:
                self._seen.move_to_end(event_id)
                return
            self._seen[event_id] = None
            if len(self._seen) > self._config.dedup_cache_size:
                self._seen.popitem(last=False)
        self._events.publish(ReceivedEvent(url, message.subscription_id, message.event))


def _count(outcomes: Mapping[str, RelayOutcome], status: OutcomeStatus) -> int:
    return sum(1 for outcome in outcomes.values() if outcome.status is status)
