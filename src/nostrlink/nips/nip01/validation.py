"""
NIP-01 event and filter validation.

Pure, synchronous checks that short-circuit on the first failure and return
a [ValidationResult][nostrlink.nips.nip01.validation.ValidationResult] with a
human-readable reason instead of raising. Callers that prefer exceptions use
[raise_for_failure()][nostrlink.nips.nip01.validation.ValidationResult.raise_for_failure].

Event checks run in this order:

1. Presence: ``id``, ``pubkey``, ``sig`` non-empty; ``created_at > 0``.
2. Format: ``id`` and ``pubkey`` are 64 hex characters, ``sig`` 128.
3. Content size: at most 64 KiB of UTF-8.
4. Tags: no empty tag, no empty tag name.
5. Identity: the recomputed id equals the stored id (case-insensitive).

Signature verification is a separate, opt-in step
([verify_event_signature()][nostrlink.nips.nip01.validation.verify_event_signature]);
[validate_event_complete()][nostrlink.nips.nip01.validation.validate_event_complete]
runs both.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from nostrlink.core.exceptions import (
    EncodingError,
    SignatureInvalidError,
    StructuralInvalidError,
)
from nostrlink.models._validation import is_hex
from nostrlink.models.constants import (
    EVENT_ID_HEX_LENGTH,
    MAX_CONTENT_BYTES,
    PUBKEY_HEX_LENGTH,
    SIGNATURE_HEX_LENGTH,
)

from .codec import compute_event_id


if TYPE_CHECKING:
    from nostrlink.models.event import Event
    from nostrlink.models.filter import Filter

    from .signature import SignatureService


class ValidationFailure(StrEnum):
    """Category of the first rule an event or filter broke."""

    PRESENCE = "presence"
    FORMAT = "format"
    CONTENT_SIZE = "content_size"
    TAGS = "tags"
    IDENTITY = "identity"
    SIGNATURE = "signature"
    FILTER = "filter"


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of a validation pass.

    Attributes:
        is_valid: Whether every check passed.
        reason: Human-readable explanation (also set on success).
        failure: Category of the failed check, ``None`` on success.
    """

    is_valid: bool
    reason: str
    failure: ValidationFailure | None = None

    def __bool__(self) -> bool:
        return self.is_valid

    def __str__(self) -> str:
        return f"{'Valid' if self.is_valid else 'Invalid'}: {self.reason}"

    @classmethod
    def ok(cls, reason: str) -> ValidationResult:
        return cls(True, reason)

    @classmethod
    def fail(cls, failure: ValidationFailure, reason: str) -> ValidationResult:
        return cls(False, reason, failure)

    def raise_for_failure(self, subscription_id: str | None = None) -> None:
        """Raise the matching protocol error if this result is invalid.

        Raises:
            SignatureInvalidError: For a ``SIGNATURE`` failure.
            StructuralInvalidError: For any other failure.
        """
        if self.is_valid:
            return
        if self.failure is ValidationFailure.SIGNATURE:
            raise SignatureInvalidError(self.reason, subscription_id=subscription_id)
        raise StructuralInvalidError(self.reason, subscription_id=subscription_id)


def validate_event(event: Event) -> ValidationResult:
    """Run the structural and identity checks on *event*."""
    if not event.id:
        return ValidationResult.fail(ValidationFailure.PRESENCE, "Event ID is missing")
    if not event.pubkey:
        return ValidationResult.fail(ValidationFailure.PRESENCE, "Public key is missing")
    if not event.sig:
        return ValidationResult.fail(ValidationFailure.PRESENCE, "Signature is missing")
    if event.created_at <= 0:
        return ValidationResult.fail(ValidationFailure.PRESENCE, "Invalid creation timestamp")

    if not is_hex(event.id, EVENT_ID_HEX_LENGTH):
        return ValidationResult.fail(
            ValidationFailure.FORMAT,
            f"Invalid event ID format - must be {EVENT_ID_HEX_LENGTH} hex characters",
        )
    if not is_hex(event.pubkey, PUBKEY_HEX_LENGTH):
        return ValidationResult.fail(
            ValidationFailure.FORMAT,
            f"Invalid public key format - must be {PUBKEY_HEX_LENGTH} hex characters",
        )
    if not is_hex(event.sig, SIGNATURE_HEX_LENGTH):
        return ValidationResult.fail(
            ValidationFailure.FORMAT,
            f"Invalid signature format - must be {SIGNATURE_HEX_LENGTH} hex characters",
        )

    try:
        content_bytes = len(event.content.encode("utf-8"))
    except UnicodeEncodeError:
        return ValidationResult.fail(
            ValidationFailure.CONTENT_SIZE, "Content is not encodable as UTF-8"
        )
    if content_bytes > MAX_CONTENT_BYTES:
        return ValidationResult.fail(
            ValidationFailure.CONTENT_SIZE,
            f"Content exceeds maximum length of {MAX_CONTENT_BYTES} bytes",
        )

    for tag in event.tags:
        if not tag:
            return ValidationResult.fail(ValidationFailure.TAGS, "Empty tag array found")
        if not tag[0]:
            return ValidationResult.fail(ValidationFailure.TAGS, "Tag name is missing")

    try:
        computed = compute_event_id(event)
    except EncodingError as e:
        return ValidationResult.fail(
            ValidationFailure.IDENTITY, f"Event cannot be serialized: {e}"
        )
    if computed != event.id.lower():
        return ValidationResult.fail(
            ValidationFailure.IDENTITY,
            f"Event ID does not match serialized content "
            f"(expected: {event.id}, computed: {computed})",
        )

    return ValidationResult.ok("Event is valid")


def verify_event_signature(event: Event, signatures: SignatureService) -> ValidationResult:
    """Check ``event.sig`` against ``event.pubkey`` and ``event.id``.

    Never raises: malformed fields are reported as a failed result.
    """
    if not event.id:
        return ValidationResult.fail(ValidationFailure.PRESENCE, "Event ID is missing")
    if not event.pubkey:
        return ValidationResult.fail(ValidationFailure.PRESENCE, "Public key is missing")
    if not event.sig:
        return ValidationResult.fail(ValidationFailure.PRESENCE, "Signature is missing")

    try:
        valid = signatures.verify(event.id, event.sig, event.pubkey)
    except EncodingError as e:
        return ValidationResult.fail(
            ValidationFailure.SIGNATURE, f"Signature verification error: {e}"
        )
    if not valid:
        return ValidationResult.fail(
            ValidationFailure.SIGNATURE,
            "Signature verification failed with both key prefixes"
            if len(event.pubkey) == PUBKEY_HEX_LENGTH
            else "Signature verification failed with compressed key",
        )
    return ValidationResult.ok("Signature is valid")


def validate_event_complete(event: Event, signatures: SignatureService) -> ValidationResult:
    """Structural pass AND signature pass; returns the first failure."""
    structural = validate_event(event)
    if not structural:
        return structural
    signature = verify_event_signature(event, signatures)
    if not signature:
        return signature
    return ValidationResult.ok("Event is valid and signature verified")


def validate_filter(filter: Filter) -> ValidationResult:  # noqa: A002
    """Check that *filter* is well-formed before it is sent in a ``REQ``."""
    for event_id in filter.ids:
        if not is_hex(event_id, EVENT_ID_HEX_LENGTH):
            return ValidationResult.fail(
                ValidationFailure.FILTER, f"Invalid event ID in filter: {event_id}"
            )
    for author in filter.authors:
        if not is_hex(author, PUBKEY_HEX_LENGTH):
            return ValidationResult.fail(
                ValidationFailure.FILTER, f"Invalid author pubkey in filter: {author}"
            )
    for name in filter.tags:
        if len(name) != 1 or not name.isalpha():
            return ValidationResult.fail(
                ValidationFailure.FILTER,
                f"Tag filter name must be a single letter: #{name}",
            )
    if filter.since is not None and filter.until is not None and filter.since > filter.until:
        return ValidationResult.fail(
            ValidationFailure.FILTER, "Filter 'since' cannot be later than 'until'"
        )
    if filter.limit is not None and filter.limit <= 0:
        return ValidationResult.fail(
            ValidationFailure.FILTER, "Filter 'limit' must be a positive number"
        )
    return ValidationResult.ok("Filter is valid")
