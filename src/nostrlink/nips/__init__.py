"""NIP implementations.

Attributes:
    nip01: Canonical serialization, signatures, validation, and wire frames.
    event_builders: Draft-to-signed-event helpers.

See Also:
    [nostrlink.models][nostrlink.models]: Data models these modules operate on.
"""

from nostrlink.nips.event_builders import (
    build_auth_event,
    build_event,
    build_text_note,
    sign_event,
)
from nostrlink.nips.nip01 import SignatureService, ValidationResult


__all__ = [
    "SignatureService",
    "ValidationResult",
    "build_auth_event",
    "build_event",
    "build_text_note",
    "sign_event",
]
