"""
Prometheus metrics for relay connections and HTTP exposition.

Defines module-level metric objects (singletons, thread-safe) shared by all
[RelayConnection][nostrlink.core.connection.RelayConnection] instances in the
process. Every metric is labelled by ``relay`` (the normalized URL).

[MetricsServer][nostrlink.core.metrics.MetricsServer] exposes an async
``/metrics`` endpoint (via aiohttp) for Prometheus scraping; the
[RelayPool][nostrlink.core.pool.RelayPool] starts it when
``metrics.enabled`` is set.

Architecture:
    FRAMES_SENT:          Outbound frames written to the channel.
    FRAMES_RECEIVED:      Inbound frames by message type.
    EVENTS_REJECTED:      Inbound events dropped, by failure category.
    RECONNECT_ATTEMPTS:   Reconnect attempts scheduled after a failure.
    CONNECTION_STATE:     1 for the current state, 0 for the others.
    QUEUE_DEPTH:          Frames waiting in the offline queue.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    generate_latest,
)
from pydantic import BaseModel, Field

from nostrlink.models.constants import ConnectionState


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    Set ``host`` to ``"0.0.0.0"`` in container environments to allow
    external scraping. The endpoint is only started when ``enabled``
    is True; the counters themselves are always updated.
    """

    enabled: bool = Field(default=False, description="Serve the metrics endpoint")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Relay Connection Metrics
# ---------------------------------------------------------------------------

FRAMES_SENT = Counter(
    "nostrlink_frames_sent_total",
    "Frames written to relay channels",
    ["relay"],
)

FRAMES_RECEIVED = Counter(
    "nostrlink_frames_received_total",
    "Frames received from relay channels, by message type",
    ["relay", "type"],
)

EVENTS_REJECTED = Counter(
    "nostrlink_events_rejected_total",
    "Inbound events dropped by validation, by failure category",
    ["relay", "reason"],
)

RECONNECT_ATTEMPTS = Counter(
    "nostrlink_reconnect_attempts_total",
    "Reconnect attempts scheduled after a transport failure",
    ["relay"],
)

CONNECTION_STATE = Gauge(
    "nostrlink_connection_state",
    "1 for the current connection state of a relay, 0 otherwise",
    ["relay", "state"],
)

QUEUE_DEPTH = Gauge(
    "nostrlink_queue_depth",
    "Frames waiting in the offline queue",
    ["relay"],
)


def record_state(relay: str, state: ConnectionState) -> None:
    """Set the state gauge of *relay* so that exactly *state* reads 1."""
    for candidate in ConnectionState:
        CONNECTION_STATE.labels(relay=relay, state=candidate.value).set(
            1 if candidate is state else 0
        )


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible /metrics endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... pool runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start listening for Prometheus scrape requests.

        Returns immediately (no-op) if metrics are disabled.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled or self._runner is not None:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._config.host, self._config.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner

    async def stop(self) -> None:
        """Stop the HTTP server. Idempotent."""
        if self._runner is not None:
            runner, self._runner = self._runner, None
            await runner.cleanup()

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )
