"""nostrlink exception hierarchy.

Provides typed exceptions for every error category so that callers catch
what they can handle (a rejected event, a throttled send) instead of bare
``Exception``, and so that ``CancelledError`` always propagates untouched.

Exception hierarchy:

```text
NostrLinkError (base -- never raised directly)
├── ConfigurationError        -- config validation, missing keys, bad YAML
├── EncodingError             -- malformed hex, UTF-8, or JSON input
├── SignatureError            -- curve library failure while signing/deriving
├── ProtocolError             -- NIP-01 wire and validation failures
│   ├── ProtocolParseError    -- frame is not a well-formed message
│   ├── StructuralInvalidError -- event/filter breaks a shape rule
│   └── SignatureInvalidError -- signature does not verify
└── ConnectivityError         -- relay unreachable, send refused
    ├── TransportError        -- connect/send failure (triggers reconnect)
    │   └── RelayTimeoutError -- connect or send timed out
    ├── RateLimitedError      -- send throttled in reject mode
    ├── QueueFullError        -- offline queue full in reject_new mode
    └── RelayClosedError      -- operation on a closed connection
```

No error in this hierarchy is fatal to the process: the worst outcome is
a single [RelayConnection][nostrlink.core.connection.RelayConnection]
reaching ``CLOSED``.

See Also:
    [RelayConnection][nostrlink.core.connection.RelayConnection]: Turns
        [TransportError][nostrlink.core.exceptions.TransportError] into a
        reconnect and surfaces the send-side errors to callers.
    [parse_relay_message()][nostrlink.nips.nip01.protocol.parse_relay_message]:
        Raises the [ProtocolError][nostrlink.core.exceptions.ProtocolError]
        subclasses.
"""

from __future__ import annotations


class NostrLinkError(Exception):
    """Base exception for all nostrlink errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostrLinkError):
    """Invalid or missing configuration (YAML, environment variables).

    See Also:
        [load_yaml()][nostrlink.core.yaml.load_yaml]: YAML loading function
            that may trigger configuration errors.
        [KeysConfig][nostrlink.utils.keys.KeysConfig]: Raises it for a
            missing or malformed private key.
    """


# ---------------------------------------------------------------------------
# Encoding and signatures
# ---------------------------------------------------------------------------


class EncodingError(NostrLinkError):
    """Input cannot be encoded or decoded: bad hex, lone surrogates, non-string tag values.

    See Also:
        [canonical_serialize()][nostrlink.nips.nip01.codec.canonical_serialize]:
            Raises it for values that have no canonical UTF-8 form.
        [SignatureService][nostrlink.nips.nip01.signature.SignatureService]:
            Raises it for malformed keys, ids, and signatures.
    """


class SignatureError(NostrLinkError):
    """The curve library failed while signing or deriving a public key.

    Verification never raises this: a bad signature is reported as ``False``.
    """


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostrLinkError):
    """NIP-01 parsing or validation failure.

    Attributes:
        reason: Human-readable explanation.
        subscription_id: Subscription the offending frame belonged to, if any.
    """

    def __init__(self, reason: str, *, subscription_id: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.subscription_id = subscription_id


class ProtocolParseError(ProtocolError):
    """Frame is not valid JSON, not an array, or has the wrong shape for its type.

    The connection logs and ignores the frame; it stays open.
    """


class StructuralInvalidError(ProtocolError):
    """Event or filter violates a shape rule (presence, hex length, content size, id).

    See Also:
        [validate_event()][nostrlink.nips.nip01.validation.validate_event]:
            Produces the reasons carried by this exception.
    """


class SignatureInvalidError(ProtocolError):
    """Event signature does not verify against its pubkey and id.

    See Also:
        [verify_event_signature()][nostrlink.nips.nip01.validation.verify_event_signature]:
            Produces the reasons carried by this exception.
    """


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(NostrLinkError):
    """Base for all relay connection and send-path errors."""


class TransportError(ConnectivityError):
    """The channel failed to open, send, or stay open.

    Inside [RelayConnection][nostrlink.core.connection.RelayConnection] this
    triggers ``RECONNECTING``; it only reaches callers from a direct
    [open_websocket()][nostrlink.utils.transport.open_websocket] call.
    """


class RelayTimeoutError(TransportError):
    """Connect or send timed out."""


class RateLimitedError(ConnectivityError):
    """Send exceeded the token budget and the rate-limit policy is ``reject``."""


class QueueFullError(ConnectivityError):
    """Offline queue is full and the overflow policy is ``reject_new``."""


class RelayClosedError(ConnectivityError):
    """Operation attempted on a connection that reached the terminal ``CLOSED`` state."""
