"""Core layer: relay connections, the relay pool, and infrastructure.

Sits at the top of the diamond DAG and depends on ``nostrlink.models``,
``nostrlink.nips``, and ``nostrlink.utils``. Because ``nips`` and ``utils``
import [nostrlink.core.exceptions][nostrlink.core.exceptions], the names
below resolve lazily on first access instead of at package import.

Attributes:
    RelayConnection: Per-relay state machine with reconnect, rate limiting,
        and offline queueing. See [RelayConnection][nostrlink.core.connection.RelayConnection].
    RelayPool: Concurrent fan-out over many connections with a subscription
        registry. See [RelayPool][nostrlink.core.pool.RelayPool].
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][nostrlink.core.logger.Logger].
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
        See [MetricsServer][nostrlink.core.metrics.MetricsServer].
    YAML: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][nostrlink.core.yaml.load_yaml].

Examples:
    ```python
    from nostrlink.core import RelayPool

    async with RelayPool.from_yaml("config.yaml") as pool:
        await pool.publish(event)
    ```
"""

import importlib


__all__ = [
    "Backoff",
    "BackoffConfig",
    "Broadcaster",
    "ConnectionTimeoutsConfig",
    "ConnectionUpdate",
    "EventRejected",
    "Logger",
    "LoggingConfig",
    "MessageReceived",
    "MetricsConfig",
    "MetricsServer",
    "OutcomeStatus",
    "QueueConfig",
    "QueueOverflowPolicy",
    "RateLimitConfig",
    "RateLimitPolicy",
    "ReceivedEvent",
    "RelayConnection",
    "RelayConnectionConfig",
    "RelayOutcome",
    "RelayPool",
    "RelayPoolConfig",
    "StateChanged",
    "StructuredFormatter",
    "TokenBucket",
    "UpdateStream",
    "format_kv_pairs",
    "load_yaml",
    "setup_logging",
]

_LAZY_IMPORTS: dict[str, str] = {
    "Backoff": "nostrlink.core.backoff",
    "BackoffConfig": "nostrlink.core.backoff",
    "Broadcaster": "nostrlink.core.stream",
    "ConnectionTimeoutsConfig": "nostrlink.core.connection",
    "ConnectionUpdate": "nostrlink.core.connection",
    "EventRejected": "nostrlink.core.connection",
    "Logger": "nostrlink.core.logger",
    "LoggingConfig": "nostrlink.core.logger",
    "MessageReceived": "nostrlink.core.connection",
    "MetricsConfig": "nostrlink.core.metrics",
    "MetricsServer": "nostrlink.core.metrics",
    "OutcomeStatus": "nostrlink.core.pool",
    "QueueConfig": "nostrlink.core.connection",
    "QueueOverflowPolicy": "nostrlink.core.connection",
    "RateLimitConfig": "nostrlink.core.ratelimit",
    "RateLimitPolicy": "nostrlink.core.ratelimit",
    "ReceivedEvent": "nostrlink.core.pool",
    "RelayConnection": "nostrlink.core.connection",
    "RelayConnectionConfig": "nostrlink.core.connection",
    "RelayOutcome": "nostrlink.core.pool",
    "RelayPool": "nostrlink.core.pool",
    "RelayPoolConfig": "nostrlink.core.pool",
    "StateChanged": "nostrlink.core.connection",
    "StructuredFormatter": "nostrlink.core.logger",
    "TokenBucket": "nostrlink.core.ratelimit",
    "UpdateStream": "nostrlink.core.stream",
    "format_kv_pairs": "nostrlink.core.logger",
    "load_yaml": "nostrlink.core.yaml",
    "setup_logging": "nostrlink.core.logger",
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module = importlib.import_module(_LAZY_IMPORTS[name])
        value = getattr(module, name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrlink.core' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
