"""WebSocket transport for relay connections.

A [RelayChannel][nostrlink.utils.transport.RelayChannel] is an opaque duplex
text-message channel: the connection layer only sends and receives strings
and never sees WebSocket framing. The default implementation,
[WebSocketChannel][nostrlink.utils.transport.WebSocketChannel], wraps an
``aiohttp`` client WebSocket; overlay networks (Tor, I2P, Lokinet) are dialed
through a SOCKS5 proxy with ``aiohttp_socks``.

Note:
    The TLS strategy for clearnet relays follows a two-phase approach: first
    attempt a fully verified TLS connection, then fall back to an unverified
    context only if the error is certificate-related and
    ``allow_insecure=True``. Security stays the default while relays with
    self-signed or expired certificates remain reachable on request.

See Also:
    [RelayConnection][nostrlink.core.connection.RelayConnection]: Opens one
        channel per connect attempt through a
        [ChannelFactory][nostrlink.utils.transport.ChannelFactory].
    [Relay][nostrlink.models.relay.Relay]: Supplies the URL and network type.

Examples:
    ```python
    channel = await open_websocket(Relay("wss://relay.damus.io"), TransportConfig(), timeout=10)
    await channel.send('["REQ","sub_1",{"limit":1}]')
    frame = await channel.receive()
    await channel.close()
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

import aiohttp
from aiohttp_socks import ProxyConnector
from pydantic import BaseModel, Field

from nostrlink.core.exceptions import RelayTimeoutError, TransportError
from nostrlink.models.constants import NetworkType
from nostrlink.models.relay import Relay


logger = logging.getLogger(__name__)

_OVERLAY_NETWORKS = frozenset({NetworkType.TOR, NetworkType.I2P, NetworkType.LOKI})

# Multi-word patterns for TLS certificate errors. Single keywords such as
# "verify" are avoided to prevent false positives from unrelated errors.
_SSL_ERROR_PATTERNS: tuple[str, ...] = (
    "ssl certificate",
    "certificate verify",
    "certificate has expired",
    "self signed certificate",
    "self-signed certificate",
    "unable to get local issuer",
    "tlsv1 alert",
    "ssl handshake",
    "cert verify failed",
)


class TransportConfig(BaseModel):
    """WebSocket transport settings.

    Attributes:
        proxy_url: SOCKS5 proxy for overlay networks (e.g. ``socks5://tor:9050``).
            Overlay relays cannot be reached without it.
        allow_insecure: Retry clearnet relays without certificate verification
            after a TLS certificate error.
        heartbeat: Seconds between WebSocket pings; ``None`` disables them.
        max_msg_size: Largest inbound frame accepted, in bytes.
    """

    proxy_url: str | None = Field(default=None, description="SOCKS5 proxy URL for overlay relays")
    allow_insecure: bool = Field(default=False, description="Fall back to unverified TLS")
    heartbeat: float | None = Field(default=30.0, gt=0.0, description="Ping interval in seconds")
    max_msg_size: int = Field(default=4 * 1024 * 1024, ge=1024, description="Max frame size")


@runtime_checkable
class RelayChannel(Protocol):
    """Duplex text-message channel to one relay."""

    @property
    def closed(self) -> bool: ...

    async def send(self, text: str) -> None:
        """Send one frame; raise [TransportError][nostrlink.core.exceptions.TransportError] on failure."""
        ...

    async def receive(self) -> str | None:
        """Return the next frame, or ``None`` once the channel is closed."""
        ...

    async def close(self) -> None: ...


ChannelFactory = Callable[[Relay], Awaitable[RelayChannel]]


def is_ssl_error(error: BaseException) -> bool:
    """Return True if *error* is, or describes, a TLS certificate failure."""
    if isinstance(error, (ssl.SSLError, aiohttp.ClientConnectorCertificateError)):
        return True
    text = str(error).lower()
    return any(pattern in text for pattern in _SSL_ERROR_PATTERNS)


def _insecure_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class WebSocketChannel:
    """[RelayChannel][nostrlink.utils.transport.RelayChannel] over an aiohttp WebSocket.

    Owns both the WebSocket and its ``ClientSession``; closing the channel
    closes both.
    """

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        session: aiohttp.ClientSession,
        close_timeout: float = 5.0,
    ) -> None:
        self._ws = ws
        self._session = session
        self._close_timeout = close_timeout

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send(self, text: str) -> None:
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"send failed: {e}") from e

    async def receive(self) -> str | None:
        while True:
            msg = await self._ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                return msg.data
            if msg.type == aiohttp.WSMsgType.BINARY:
                try:
                    return msg.data.decode("utf-8")
                except UnicodeDecodeError:
                    logger.debug("ws_binary_frame_dropped size=%s", len(msg.data))
                    continue
            if msg.type in (aiohttp.WSMsgType.PING, aiohttp.WSMsgType.PONG):
                continue
            # CLOSE, CLOSING, CLOSED, ERROR -> connection terminated
            if msg.type == aiohttp.WSMsgType.ERROR:
                logger.debug("ws_error error=%s", self._ws.exception())
            return None

    async def close(self) -> None:
        """Close the WebSocket and session with timeouts to prevent hanging."""
        # aiohttp can raise ClientError, ServerDisconnectedError, etc. during
        # close; teardown must always reach the session.
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._ws.close(), timeout=self._close_timeout)
        with contextlib.suppress(Exception):
            await asyncio.wait_for(self._session.close(), timeout=self._close_timeout)


async def _dial(
    relay: Relay,
    config: TransportConfig,
    ssl_context: ssl.SSLContext | bool,
) -> WebSocketChannel:
    if config.proxy_url and relay.network in _OVERLAY_NETWORKS:
        connector: aiohttp.BaseConnector = ProxyConnector.from_url(
            config.proxy_url, ssl=ssl_context
        )
    else:
        connector = aiohttp.TCPConnector(ssl=ssl_context)

    session = aiohttp.ClientSession(connector=connector)
    try:
        ws = await session.ws_connect(
            relay.url,
            heartbeat=config.heartbeat,
            max_msg_size=config.max_msg_size,
        )
    except BaseException:
        await session.close()
        raise
    return WebSocketChannel(ws, session)


async def open_websocket(
    relay: Relay,
    config: TransportConfig | None = None,
    timeout: float = 10.0,  # noqa: ASYNC109
) -> WebSocketChannel:
    """Open a WebSocket channel to *relay*.

    Args:
        relay: Relay to dial.
        config: Transport settings; defaults to
            [TransportConfig][nostrlink.utils.transport.TransportConfig]().
        timeout: Seconds allowed for the TCP, TLS, and WebSocket handshake.

    Returns:
        An open channel.

    Raises:
        TransportError: On any connection failure, including an overlay relay
            without ``proxy_url`` and a certificate error when
            ``allow_insecure`` is ``False``.
        RelayTimeoutError: If the handshake does not finish within *timeout*.
    """
    config = config or TransportConfig()
    if relay.network in _OVERLAY_NETWORKS and not config.proxy_url:
        raise TransportError(f"proxy_url required for {relay.network} relay: {relay.url}")

    logger.debug("ws_connecting relay=%s timeout_s=%s", relay.url, timeout)
    try:
        try:
            async with asyncio.timeout(timeout):
                return await _dial(relay, config, ssl_context=True)
        except (aiohttp.ClientError, ssl.SSLError, OSError) as e:
            if relay.scheme != "wss" or not is_ssl_error(e) or not config.allow_insecure:
                raise
            logger.debug("ssl_fallback_insecure relay=%s error=%s", relay.url, str(e))

        async with asyncio.timeout(timeout):
            return await _dial(relay, config, ssl_context=_insecure_ssl_context())
    except TimeoutError as e:
        logger.debug("ws_timeout relay=%s", relay.url)
        raise RelayTimeoutError(f"connection timeout: {relay.url}") from e
    except (aiohttp.ClientError, ssl.SSLError, OSError) as e:
        logger.debug("ws_connect_failed relay=%s error=%s", relay.url, str(e))
        raise TransportError(f"connection failed: {relay.url} ({e})") from e


def websocket_factory(
    config: TransportConfig | None = None,
    timeout: float = 10.0,
) -> ChannelFactory:
    """Return a [ChannelFactory][nostrlink.utils.transport.ChannelFactory] bound to *config*."""

    async def factory(relay: Relay) -> RelayChannel:
        return await open_websocket(relay, config, timeout)

    return factory
