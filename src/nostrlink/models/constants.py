"""Shared constants for the models layer.

Defines enumerations and protocol limits that are used across multiple
model modules. Placing them here avoids circular dependencies between the
models, nips, and core layers.

See Also:
    [nostrlink.models.relay][]: Uses [NetworkType][nostrlink.models.constants.NetworkType]
        to classify relay URLs during construction.
    [nostrlink.nips.nip01.validation][]: Enforces
        [MAX_CONTENT_BYTES][nostrlink.models.constants.MAX_CONTENT_BYTES] and the
        hex lengths defined here.
    [nostrlink.core.connection][]: Uses
        [ConnectionState][nostrlink.models.constants.ConnectionState] for its
        state machine.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class NetworkType(StrEnum):
    """Network type enum for relay classification.

    Each relay URL is classified into exactly one network type during
    [Relay][nostrlink.models.relay.Relay] construction. Clearnet relays are
    normalized to ``wss://``; overlay networks and local relays keep ``ws://``
    (encryption is handled by the overlay, and local relays are commonly
    used for development).

    Attributes:
        CLEARNET: Public internet relay using ``wss://`` (TLS required).
        TOR: Tor hidden service identified by a ``.onion`` hostname.
        I2P: I2P eepsite identified by a ``.i2p`` hostname.
        LOKI: Lokinet service identified by a ``.loki`` hostname.
        LOCAL: Loopback, private, or reserved address.
        UNKNOWN: Hostname that could not be classified (rejected during validation).
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"
    UNKNOWN = "unknown"


class EventKind(IntEnum):
    """Well-known Nostr event kinds.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- plain text note (NIP-01).
        RECOMMEND_RELAY: Kind 2 -- legacy relay recommendation (NIP-01, deprecated).
        CONTACTS: Kind 3 -- contact list with relay hints (NIP-02).
        DELETION: Kind 5 -- event deletion request (NIP-09).
        REACTION: Kind 7 -- reaction to another event (NIP-25).
        RELAY_LIST: Kind 10002 -- relay list metadata (NIP-65).
        CLIENT_AUTH: Kind 22242 -- client authentication reply (NIP-42).
    """

    SET_METADATA = 0
    TEXT_NOTE = 1
    RECOMMEND_RELAY = 2
    CONTACTS = 3
    DELETION = 5
    REACTION = 7
    RELAY_LIST = 10_002
    CLIENT_AUTH = 22_242


class ConnectionState(StrEnum):
    """Lifecycle state of a single relay connection.

    ``CLOSED`` is terminal: a closed connection never transitions again.
    Every other state may fall back to ``RECONNECTING`` or ``DISCONNECTED``
    on transport failure.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class MessageType(StrEnum):
    """Frame discriminators of the NIP-01 wire protocol."""

    EVENT = "EVENT"
    REQ = "REQ"
    CLOSE = "CLOSE"
    CLOSED = "CLOSED"
    NOTICE = "NOTICE"
    EOSE = "EOSE"
    OK = "OK"
    AUTH = "AUTH"


# Hex lengths of the fixed-size event fields
EVENT_ID_HEX_LENGTH = 64
PUBKEY_HEX_LENGTH = 64
SIGNATURE_HEX_LENGTH = 128

# NIP-01 default content limit, measured in UTF-8 bytes
MAX_CONTENT_BYTES = 64 * 1024
