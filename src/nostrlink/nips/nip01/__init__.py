"""NIP-01: basic protocol flow.

Canonical event serialization, deterministic signatures, event and filter
validation, and the relay wire protocol. Everything in this package is
synchronous and free of I/O.

See Also:
    [nostrlink.core.connection][]: Drives these functions over a live channel.
"""

from .codec import canonical_serialize, compute_event_id, compute_id, serialize_complete
from .protocol import (
    MessageType,
    build_auth,
    build_publish,
    build_subscribe,
    build_unsubscribe,
    parse_relay_message,
)
from .signature import SignatureService
from .validation import (
    ValidationFailure,
    ValidationResult,
    validate_event,
    validate_event_complete,
    validate_filter,
    verify_event_signature,
)


__all__ = [
    "MessageType",
    "SignatureService",
    "ValidationFailure",
    "ValidationResult",
    "build_auth",
    "build_publish",
    "build_subscribe",
    "build_unsubscribe",
    "canonical_serialize",
    "compute_event_id",
    "compute_id",
    "parse_relay_message",
    "serialize_complete",
    "validate_event",
    "validate_event_complete",
    "validate_filter",
    "verify_event_signature",
]
