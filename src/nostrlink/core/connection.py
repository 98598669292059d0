"""
Per-relay connection state machine.

[RelayConnection][nostrlink.core.connection.RelayConnection] owns exactly one
[RelayChannel][nostrlink.utils.transport.RelayChannel] at a time, one
supervisor task (connect, read loop, backoff wait), one offline queue, and
one token bucket. Connections share no mutable state with each other.

State transitions:

```text
DISCONNECTED --connect()--> CONNECTING --channel open--> CONNECTED
CONNECTING   --failure----> RECONNECTING --backoff elapsed--> CONNECTING
CONNECTED    --drop-------> RECONNECTING
any          --disconnect()/max_attempts--> DISCONNECTED
any          --close()----> CLOSED (terminal)
```

Outbound frames reach the channel in the order they were sent: while not
``CONNECTED`` they are queued, and on reaching ``CONNECTED`` the queue is
flushed FIFO under the same lock that every new send takes, so nothing can
overtake a queued frame. Inbound frames are parsed synchronously and
published, in arrival order, to every stream returned by
[observe()][nostrlink.core.connection.RelayConnection.observe].

See Also:
    [RelayPool][nostrlink.core.pool.RelayPool]: Composes many connections.
    [parse_relay_message()][nostrlink.nips.nip01.protocol.parse_relay_message]:
        Turns inbound text into typed messages.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, TypeAlias

from pydantic import BaseModel, Field

from nostrlink.models.constants import ConnectionState, MessageType
from nostrlink.models.message import (
    AuthChallengeMessage,
    ClosedMessage,
    EndOfStoredEventsMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    RelayMessage,
)
from nostrlink.models.relay import Relay
from nostrlink.nips.nip01.protocol import (
    build_auth,
    build_publish,
    build_subscribe,
    build_unsubscribe,
    parse_relay_message,
)
from nostrlink.nips.nip01.signature import SignatureService
from nostrlink.nips.nip01.validation import validate_filter
from nostrlink.utils.transport import TransportConfig, websocket_factory

from .backoff import Backoff, BackoffConfig
from .exceptions import (
    ConnectivityError,
    ProtocolParseError,
    QueueFullError,
    RelayClosedError,
    SignatureInvalidError,
    StructuralInvalidError,
)
from .logger import Logger
from .metrics import (
    EVENTS_REJECTED,
    FRAMES_RECEIVED,
    FRAMES_SENT,
    QUEUE_DEPTH,
    RECONNECT_ATTEMPTS,
    record_state,
)
from .ratelimit import RateLimitConfig, RateLimitPolicy, TokenBucket
from .stream import Broadcaster, UpdateStream


if TYPE_CHECKING:
    import random

    from nostrlink.models.event import Event
    from nostrlink.models.filter import Filter
    from nostrlink.utils.transport import ChannelFactory, RelayChannel


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class QueueOverflowPolicy(StrEnum):
    """What to do when a frame arrives and the offline queue is full."""

    DROP_OLDEST = "drop_oldest"
    REJECT_NEW = "reject_new"


class QueueConfig(BaseModel):
    """Offline queue bounds.

    Attributes:
        max_size: Maximum frames held while not connected.
        overflow: ``drop_oldest`` discards the oldest frame, ``reject_new``
            raises [QueueFullError][nostrlink.core.exceptions.QueueFullError].
    """

    max_size: int = Field(default=1000, ge=1, description="Maximum queued frames")
    overflow: QueueOverflowPolicy = Field(
        default=QueueOverflowPolicy.DROP_OLDEST, description="Overflow policy"
    )


class ConnectionTimeoutsConfig(BaseModel):
    """Timeouts for connection operations (in seconds)."""

    connect: float = Field(default=10.0, gt=0.0, description="Channel open timeout")
    send: float = Field(default=10.0, gt=0.0, description="Single frame write timeout")
    close: float = Field(default=5.0, gt=0.0, description="Channel close timeout")


class RelayConnectionConfig(BaseModel):
    """Aggregate configuration for one relay connection.

    Attributes:
        backoff: Reconnect delays and attempt limit.
        rate_limit: Outbound token bucket.
        queue: Offline queue bounds.
        timeouts: Connect, send, and close timeouts.
        transport: WebSocket settings for the default channel factory.
        verify_signatures: Verify inbound event signatures in addition to
            the structural and identity checks that always run.
    """

    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    timeouts: ConnectionTimeoutsConfig = Field(default_factory=ConnectionTimeoutsConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    verify_signatures: bool = Field(default=True, description="Verify inbound signatures")


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StateChanged:
    """The connection moved from *previous* to *current*."""

    relay_url: str
    previous: ConnectionState
    current: ConnectionState


@dataclass(frozen=True, slots=True)
class MessageReceived:
    """A frame parsed into a typed message (events already validated)."""

    relay_url: str
    message: RelayMessage


@dataclass(frozen=True, slots=True)
class EventRejected:
    """An ``EVENT`` frame was dropped because its event failed validation.

    Attributes:
        relay_url: Relay that sent the event.
        subscription_id: Subscription the event was delivered for.
        reason: Human-readable validation failure.
        category: ``"structural"`` or ``"signature"``.
    """

    relay_url: str
    subscription_id: str | None
    reason: str
    category: str


ConnectionUpdate: TypeAlias = StateChanged | MessageReceived | EventRejected


# ---------------------------------------------------------------------------
# RelayConnection
# ---------------------------------------------------------------------------


class RelayConnection:
    """Connection to one relay with reconnect, rate limiting, and offline queueing.

    Args:
        relay: Relay or relay URL.
        config: Connection settings; defaults to
            [RelayConnectionConfig][nostrlink.core.connection.RelayConnectionConfig]().
        channel_factory: Opens a channel for the relay. Defaults to an
            aiohttp WebSocket built from ``config.transport``.
        signatures: Signature service used when ``verify_signatures`` is set.
        clock: Monotonic clock for the token bucket.
        rng: Random source for backoff jitter.

    Examples:
        ```python
        conn = RelayConnection("wss://relay.damus.io")
        updates = conn.observe()
        await conn.connect()
        await conn.subscribe("sub_1", Filter(kinds=(1,), limit=10))
        async for update in updates:
            ...
        await conn.close()
        ```
    """

    def __init__(
        self,
        relay: Relay | str,
        config: RelayConnectionConfig | None = None,
        *,
        channel_factory: ChannelFactory | None = None,
        signatures: SignatureService | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._relay = relay if isinstance(relay, Relay) else Relay(relay)
        self._config = config or RelayConnectionConfig()
        self._channel_factory: ChannelFactory = channel_factory or websocket_factory(
            self._config.transport, timeout=self._config.timeouts.connect
        )
        self._signatures = signatures or SignatureService()
        self._backoff = Backoff(self._config.backoff, rng=rng)
        self._bucket = TokenBucket.from_config(self._config.rate_limit, clock=clock)
        self._logger = Logger("nostrlink.connection").bind(relay=self._relay.url)

        self._state = ConnectionState.DISCONNECTED
        self._state_event = asyncio.Event()
        self._updates: Broadcaster[ConnectionUpdate] = Broadcaster()
        self._queue: deque[str] = deque()
        self._send_lock = asyncio.Lock()
        self._channel: RelayChannel | None = None
        self._task: asyncio.Task[None] | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._flush_holds_lock = False
        self._first_attempt: asyncio.Future[bool] | None = None
        self._subscriptions: dict[str, tuple[Filter, str]] = {}

        record_state(self._relay.url, self._state)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def relay(self) -> Relay:
        return self._relay

    @property
    def url(self) -> str:
        return self._relay.url

    @property
    def config(self) -> RelayConnectionConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def queue_size(self) -> int:
        """Frames waiting to be flushed on the next ``CONNECTED`` transition."""
        return len(self._queue)

    @property
    def subscriptions(self) -> Mapping[str, Filter]:
        """Subscription ids sent (or queued) on this connection and their filters."""
        return MappingProxyType({sid: entry[0] for sid, entry in self._subscriptions.items()})

    def observe(self) -> UpdateStream[ConnectionUpdate]:
        """Return a stream of every update from now until [close()][nostrlink.core.connection.RelayConnection.close]."""
        return self._updates.subscribe()

    def __repr__(self) -> str:
        return f"RelayConnection(url={self._relay.url!r}, state={self._state.value})"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """Start the supervisor and wait for the first connect attempt.

        Returns:
            True if the first attempt reached ``CONNECTED``. On False the
            supervisor keeps retrying with backoff in the background.

        Raises:
            RelayClosedError: If the connection was closed.
        """
        self._ensure_open()
        if self._task is not None and not self._task.done():
            return self.is_connected

        loop = asyncio.get_running_loop()
        self._first_attempt = loop.create_future()
        self._task = asyncio.create_task(self._run(), name=f"relay:{self._relay.url}")
        return await self._first_attempt

    async def disconnect(self) -> None:
        """Stop the supervisor and close the channel, keeping the offline queue.

        The connection settles in ``DISCONNECTED`` and can be connected again.
        """
        if self._state is ConnectionState.CLOSED:
            return
        await self._stop()
        self._end_subscriptions()
        self._set_state(ConnectionState.DISCONNECTED)
        self._logger.info("disconnected", queued=len(self._queue))

    async def close(self) -> None:
        """Close the connection for good.

        Transitions to ``CLOSED`` immediately, discards the offline queue,
        cancels any pending backoff wait or in-flight connect, closes the
        channel, and ends every observer stream. Idempotent.
        """
        if self._state is ConnectionState.CLOSED:
            return
        self._set_state(ConnectionState.CLOSED)
        dropped = len(self._queue)
        self._queue.clear()
        self._record_queue_depth()
        self._subscriptions.clear()
        await self._stop()
        self._updates.close()
        self._logger.info("closed", dropped=dropped)

    async def __aenter__(self) -> RelayConnection:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def wait_for_state(self, *states: ConnectionState) -> ConnectionState:
        """Wait until the connection is in one of *states* and return it."""
        while self._state not in states:
            await self._state_event.wait()
        return self._state

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def send(self, frame: str) -> bool:
        """Send a raw frame, or queue it while not connected.

        Returns:
            True if the frame was written to the channel, False if it was
            queued for the next ``CONNECTED`` transition.

        Raises:
            RelayClosedError: If the connection is closed.
            RateLimitedError: If the bucket is empty and the policy is ``reject``.
            QueueFullError: If queueing and the queue is full under ``reject_new``.
        """
        self._ensure_open()
        if not frame:
            raise ValueError("frame is required")
        if self._state is not ConnectionState.CONNECTED:
            self._enqueue(frame)
            return False

        async with self._send_lock:
            if self._state is not ConnectionState.CONNECTED:
                self._ensure_open()
                self._enqueue(frame)
                return False
            await self._bucket.acquire(self._config.rate_limit.policy)
            if self._state is not ConnectionState.CONNECTED or self._channel is None:
                self._ensure_open()
                self._enqueue(frame)
                return False
            return await self._write(self._channel, frame)

    async def publish(self, event: Event) -> bool:
        """Send ``["EVENT", <event>]``; see [send()][nostrlink.core.connection.RelayConnection.send]."""
        return await self.send(build_publish(event))

    async def authenticate(self, event: Event) -> bool:
        """Send the NIP-42 ``["AUTH", <event>]`` reply."""
        return await self.send(build_auth(event))

    async def subscribe(self, subscription_id: str, filter: Filter) -> bool:  # noqa: A002
        """Validate *filter* and send ``["REQ", <sub-id>, <filter>]``.

        Raises:
            StructuralInvalidError: If the filter is not well-formed.
        """
        validate_filter(filter).raise_for_failure(subscription_id)
        frame = build_subscribe(subscription_id, filter)
        self._subscriptions[subscription_id] = (filter, frame)
        try:
            return await self.send(frame)
        except ConnectivityError:
            self._subscriptions.pop(subscription_id, None)
            raise

    async def unsubscribe(self, subscription_id: str) -> bool:
        """End a subscription.

        While connected, sends ``["CLOSE", <sub-id>]``. Otherwise the REQ is
        removed from the offline queue if it never left, and nothing is sent.

        Returns:
            True if a ``CLOSE`` frame was written.
        """
        entry = self._subscriptions.pop(subscription_id, None)
        if self._state is not ConnectionState.CONNECTED:
            if entry is not None and entry[1] in self._queue:
                self._queue.remove(entry[1])
                self._record_queue_depth()
            return False
        return await self.send(build_unsubscribe(subscription_id))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._state is ConnectionState.CLOSED:
            raise RelayClosedError(f"connection to {self._relay.url} is closed")

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        if previous is state or previous is ConnectionState.CLOSED:
            return
        self._state = state
        record_state(self._relay.url, state)
        self._logger.debug("state_changed", previous=previous.value, current=state.value)
        self._updates.publish(StateChanged(self._relay.url, previous, state))
        self._state_event.set()
        self._state_event = asyncio.Event()

    def _record_queue_depth(self) -> None:
        QUEUE_DEPTH.labels(relay=self._relay.url).set(len(self._queue))

    def _enqueue(self, frame: str) -> None:
        if len(self._queue) >= self._config.queue.max_size:
            if self._config.queue.overflow is QueueOverflowPolicy.REJECT_NEW:
                raise QueueFullError(
                    f"offline queue for {self._relay.url} is full "
                    f"({self._config.queue.max_size} frames)"
                )
            self._queue.popleft()
            self._logger.warning("queue_overflow_dropped_oldest", size=len(self._queue))
        self._queue.append(frame)
        self._record_queue_depth()

    async def _write(self, channel: RelayChannel, frame: str) -> bool:
        """Write one frame; on failure re-queue it at the front and drop the channel."""
        try:
            async with asyncio.timeout(self._config.timeouts.send):
                await channel.send(frame)
        except (ConnectivityError, OSError) as e:
            self._queue.appendleft(frame)
            self._record_queue_depth()
            self._logger.warning("send_failed", error=str(e), queued=len(self._queue))
            await self._close_channel(channel)
            return False
        FRAMES_SENT.labels(relay=self._relay.url).inc()
        return True

    async def _flush(self, channel: RelayChannel) -> None:
        """Drain the offline queue FIFO; the caller already holds the send lock."""
        try:
            sent = 0
            while self._queue and self._channel is channel:
                await self._bucket.acquire(RateLimitPolicy.QUEUE)
                frame = self._queue.popleft()
                self._record_queue_depth()
                try:
                    written = await self._write(channel, frame)
                except asyncio.CancelledError:
                    self._queue.appendleft(frame)
                    raise
                if not written:
                    break
                sent += 1
            if sent:
                self._logger.info("queue_flushed", sent=sent, remaining=len(self._queue))
        finally:
            self._release_flush_lock()

    def _release_flush_lock(self) -> None:
        """Release the send lock taken on connect, at most once per connection."""
        if self._flush_holds_lock:
            self._flush_holds_lock = False
            self._send_lock.release()

    async def _cancel_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            self._flush_task.cancel()
            await asyncio.gather(self._flush_task, return_exceptions=True)
        self._flush_task = None
        self._release_flush_lock()

    async def _close_channel(self, channel: RelayChannel) -> None:
        try:
            async with asyncio.timeout(self._config.timeouts.close):
                await channel.close()
        except (ConnectivityError, OSError) as e:
            self._logger.debug("channel_close_failed", error=str(e))

    async def _stop(self) -> None:
        """Cancel the supervisor and flush tasks and close the channel."""
        tasks = [t for t in (self._task, self._flush_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._flush_task = None
        self._release_flush_lock()
        self._resolve_first_attempt(False)
        channel, self._channel = self._channel, None
        if channel is not None:
            await self._close_channel(channel)

    def _resolve_first_attempt(self, connected: bool) -> None:
        if self._first_attempt is not None and not self._first_attempt.done():
            self._first_attempt.set_result(connected)

    def _end_subscriptions(self) -> None:
        """Forget subscriptions whose REQ reached the relay; queued ones survive."""
        queued = set(self._queue)
        ended = [sid for sid, (_, frame) in self._subscriptions.items() if frame not in queued]
        for sid in ended:
            del self._subscriptions[sid]
        if ended:
            self._logger.debug("subscriptions_ended", count=len(ended))

    async def _run(self) -> None:
        """Supervisor: connect, read until the channel drops, back off, repeat."""
        try:
            while True:
                self._set_state(ConnectionState.CONNECTING)
                try:
                    async with asyncio.timeout(self._config.timeouts.connect):
                        channel = await self._channel_factory(self._relay)
                except (ConnectivityError, OSError) as e:
                    self._logger.warning(
                        "connect_failed", error=str(e) or type(e).__name__,
                        attempt=self._backoff.failures + 1,
                    )
                    self._resolve_first_attempt(False)
                    if not await self._back_off():
                        return
                    continue
                except Exception as e:  # Intentionally broad: top-level error boundary
                    self._logger.exception(
                        "connect_error", error=str(e) or type(e).__name__,
                        attempt=self._backoff.failures + 1,
                    )
                    self._resolve_first_attempt(False)
                    if not await self._back_off():
                        return
                    continue

                await self._send_lock.acquire()
                self._flush_holds_lock = True
                try:
                    self._channel = channel
                    self._backoff.reset()
                    self._set_state(ConnectionState.CONNECTED)
                    self._flush_task = asyncio.create_task(
                        self._flush(channel), name=f"relay-flush:{self._relay.url}"
                    )
                    self._logger.info("connected", queued=len(self._queue))
                    self._resolve_first_attempt(True)

                    await self._read(channel)
                finally:
                    await self._cancel_flush()

                self._channel = None
                await self._close_channel(channel)
                self._end_subscriptions()
                self._logger.warning("connection_lost")
                if not await self._back_off():
                    return
        finally:
            self._resolve_first_attempt(False)

    async def _back_off(self) -> bool:
        """Wait before the next attempt; return False once attempts are exhausted."""
        delay = self._backoff.next_delay()
        if self._backoff.exhausted:
            self._logger.error("reconnect_abandoned", failures=self._backoff.failures)
            self._set_state(ConnectionState.DISCONNECTED)
            return False
        self._set_state(ConnectionState.RECONNECTING)
        RECONNECT_ATTEMPTS.labels(relay=self._relay.url).inc()
        self._logger.info("reconnect_scheduled", delay=round(delay, 3), failures=self._backoff.failures)
        await asyncio.sleep(delay)
        return True

    async def _read(self, channel: RelayChannel) -> None:
        while True:
            try:
                text = await channel.receive()
            except (ConnectivityError, OSError) as e:
                self._logger.warning("receive_failed", error=str(e))
                return
            if text is None:
                return
            try:
                self._dispatch(text)
            except Exception as e:  # Intentionally broad: a bad frame drops the channel
                self._logger.exception("dispatch_failed", error=str(e) or type(e).__name__)
                return

    def _dispatch(self, text: str) -> None:
        signatures = self._signatures if self._config.verify_signatures else None
        try:
            message = parse_relay_message(text, signatures=signatures)
        except ProtocolParseError as e:
            FRAMES_RECEIVED.labels(relay=self._relay.url, type="invalid").inc()
            self._logger.warning("frame_unparseable", error=e.reason, frame=text[:200])
            return
        except (StructuralInvalidError, SignatureInvalidError) as e:
            category = "signature" if isinstance(e, SignatureInvalidError) else "structural"
            FRAMES_RECEIVED.labels(relay=self._relay.url, type=MessageType.EVENT).inc()
            EVENTS_REJECTED.labels(relay=self._relay.url, reason=category).inc()
            self._logger.warning(
                "event_rejected", subscription=e.subscription_id, reason=e.reason
            )
            self._updates.publish(
                EventRejected(self._relay.url, e.subscription_id, e.reason, category)
            )
            return

        FRAMES_RECEIVED.labels(relay=self._relay.url, type=_message_type(message)).inc()
        if isinstance(message, ClosedMessage):
            self._subscriptions.pop(message.subscription_id, None)
            self._logger.info(
                "subscription_closed", subscription=message.subscription_id, reason=message.reason
            )
        self._updates.publish(MessageReceived(self._relay.url, message))


_MESSAGE_TYPES: dict[type, str] = {
    AuthChallengeMessage: MessageType.AUTH,
    ClosedMessage: MessageType.CLOSED,
    EndOfStoredEventsMessage: MessageType.EOSE,
    EventMessage: MessageType.EVENT,
    NoticeMessage: MessageType.NOTICE,
    OkMessage: MessageType.OK,
}


def _message_type(message: RelayMessage) -> str:
    return _MESSAGE_TYPES.get(type(message), "unknown")
