"""
Client-side subscription record.

A [Subscription][nostrlink.models.subscription.Subscription] pairs a
subscription id with its [Filter][nostrlink.models.filter.Filter] and tracks,
per relay, whether the REQ is active and whether the relay has signalled
end-of-stored-events. The id and filter are fixed at creation; only the relay
bookkeeping changes over the subscription's lifetime.

The record is owned by the caller (or by the
[RelayPool][nostrlink.core.pool.RelayPool] registry). Connections only refer
to it by id.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field

from .filter import Filter


SUBSCRIPTION_ID_PREFIX = "sub_"


def generate_subscription_id() -> str:
    """Return a fresh id of the form ``sub_<8 hex>``."""
    return f"{SUBSCRIPTION_ID_PREFIX}{secrets.token_hex(4)}"


@dataclass(slots=True)
class Subscription:
    """Subscription state across relays.

    Attributes:
        filter: The query sent in every ``REQ`` frame.
        id: Subscription id; generated when not supplied.
        created_at: Unix timestamp of creation.
        active_relays: Relays the ``REQ`` was delivered to and that have not
            closed it.
        eose_relays: Relays that sent ``EOSE``.
    """

    filter: Filter
    id: str = field(default_factory=generate_subscription_id)
    created_at: int = field(default_factory=lambda: int(time.time()))
    active_relays: set[str] = field(default_factory=set)
    eose_relays: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise ValueError("subscription id must be a non-empty str")
        if not isinstance(self.filter, Filter):
            raise TypeError(f"filter must be a Filter, got {type(self.filter).__name__}")

    @property
    def is_active(self) -> bool:
        return bool(self.active_relays)

    @property
    def is_complete(self) -> bool:
        """True once every active relay has sent ``EOSE``."""
        return bool(self.active_relays) and self.active_relays <= self.eose_relays

    def mark_active(self, relay_url: str) -> None:
        self.active_relays.add(relay_url)

    def mark_eose(self, relay_url: str) -> None:
        self.eose_relays.add(relay_url)

    def mark_inactive(self, relay_url: str) -> None:
        """Forget *relay_url*: the subscription ended there (CLOSE, CLOSED, or disconnect)."""
        self.active_relays.discard(relay_url)
        self.eose_relays.discard(relay_url)
