"""Pure dataclasses with zero I/O for Nostr events, filters, relays, and messages.

The models layer is the foundation of the diamond DAG. It depends on no other
nostrlink package and on no third-party library other than ``rfc3986`` for
relay URL parsing. Value models use ``@dataclass(frozen=True, slots=True)``;
type checks happen in ``__post_init__`` so that ill-typed instances never
escape the constructor, while protocol rules are left to the NIP-01
validators so that malformed wire data can still be represented and rejected
with a reason.

Attributes:
    Event: Signed event as exchanged with relays.
    EventDraft: Unsigned event fields, input to signing.
    Filter: Subscription filter with wire conversion and local matching.
    Relay: Validated relay URL with
        [NetworkType][nostrlink.models.constants.NetworkType] detection.
    RelayMessage: Union of the typed inbound frame variants.
    Subscription: Mutable per-relay bookkeeping for one subscription id.
    ConnectionState: Lifecycle state of a relay connection.
    MessageType: Frame discriminators of the wire protocol.

Note:
    Frozen models use ``object.__setattr__`` in ``__post_init__`` to store
    normalized fields. This is safe because ``__post_init__`` runs before the
    instance is exposed to external code.

See Also:
    [nostrlink.nips.nip01][]: Codec, signatures, validation, and wire protocol.
    [nostrlink.core][]: Connections and pool built on these models.
"""

from .constants import (
    EVENT_ID_HEX_LENGTH,
    MAX_CONTENT_BYTES,
    PUBKEY_HEX_LENGTH,
    SIGNATURE_HEX_LENGTH,
    ConnectionState,
    EventKind,
    MessageType,
    NetworkType,
)
from .event import Event, EventDraft
from .filter import Filter
from .message import (
    AuthChallengeMessage,
    ClosedMessage,
    EndOfStoredEventsMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    RelayMessage,
    UnknownMessage,
)
from .relay import Relay
from .subscription import Subscription, generate_subscription_id


__all__ = [
    "EVENT_ID_HEX_LENGTH",
    "MAX_CONTENT_BYTES",
    "PUBKEY_HEX_LENGTH",
    "SIGNATURE_HEX_LENGTH",
    "AuthChallengeMessage",
    "ClosedMessage",
    "ConnectionState",
    "EndOfStoredEventsMessage",
    "Event",
    "EventDraft",
    "EventKind",
    "EventMessage",
    "Filter",
    "MessageType",
    "NetworkType",
    "NoticeMessage",
    "OkMessage",
    "Relay",
    "RelayMessage",
    "Subscription",
    "UnknownMessage",
    "generate_subscription_id",
]
