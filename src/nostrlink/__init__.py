r"""nostrlink -- Nostr (NIP-01) client engine.

Builds, signs, and validates events, speaks the relay wire protocol, and
keeps resilient connections to many relays at once.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              core            Connections, pool, logging, errors, config
             /    \
          nips    utils       NIP-01 codec/validation/protocol; signer, keys, transport
             \    /
             models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Events, filters, relay messages, subscriptions, relay URLs.
    nips: Canonical serialization, signatures, validation, wire frames.
    utils: Curve signer, key handling, WebSocket transport.
    core: RelayConnection, RelayPool, exceptions, logging, metrics.

Note:
    Top-level imports (``from nostrlink import RelayPool``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrlink")

__all__ = [
    "Event",
    "EventDraft",
    "Filter",
    "Logger",
    "NostrLinkError",
    "Relay",
    "RelayConnection",
    "RelayConnectionConfig",
    "RelayPool",
    "RelayPoolConfig",
    "SignatureService",
    "Subscription",
    "build_event",
    "build_text_note",
    "sign_event",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("nostrlink.core", "Logger"),
    "NostrLinkError": ("nostrlink.core.exceptions", "NostrLinkError"),
    "RelayConnection": ("nostrlink.core", "RelayConnection"),
    "RelayConnectionConfig": ("nostrlink.core", "RelayConnectionConfig"),
    "RelayPool": ("nostrlink.core", "RelayPool"),
    "RelayPoolConfig": ("nostrlink.core", "RelayPoolConfig"),
    "Event": ("nostrlink.models", "Event"),
    "EventDraft": ("nostrlink.models", "EventDraft"),
    "Filter": ("nostrlink.models", "Filter"),
    "Relay": ("nostrlink.models", "Relay"),
    "Subscription": ("nostrlink.models", "Subscription"),
    "SignatureService": ("nostrlink.nips", "SignatureService"),
    "build_event": ("nostrlink.nips", "build_event"),
    "build_text_note": ("nostrlink.nips", "build_text_note"),
    "sign_event": ("nostrlink.nips", "sign_event"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrlink' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
