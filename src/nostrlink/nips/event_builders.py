"""Nostr event builders.

Turns an [EventDraft][nostrlink.models.event.EventDraft] into a signed,
immutable [Event][nostrlink.models.event.Event] (draft, then id, then
signature), plus helpers for the event kinds this client sends itself.

See Also:
    [nostrlink.nips.nip01.codec][]: Computes the id.
    [SignatureService][nostrlink.nips.nip01.signature.SignatureService]:
        Produces the signature.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from nostrlink.core.exceptions import EncodingError
from nostrlink.models.constants import EventKind
from nostrlink.models.event import Event, EventDraft
from nostrlink.nips.nip01.codec import compute_event_id
from nostrlink.nips.nip01.signature import SignatureService


if TYPE_CHECKING:
    from nostrlink.models.relay import Relay


def build_event(
    pubkey: str,
    kind: int,
    content: str = "",
    tags: Sequence[Sequence[str]] = (),
    created_at: int | None = None,
) -> EventDraft:
    """Build a draft, stamping ``created_at`` with the current time when omitted."""
    return EventDraft(
        pubkey=pubkey.lower(),
        created_at=int(time.time()) if created_at is None else created_at,
        kind=kind,
        tags=tags,
        content=content,
    )


def sign_event(
    draft: EventDraft,
    private_key: bytes | str,
    signatures: SignatureService | None = None,
) -> Event:
    """Compute the id of *draft*, sign it, and return the immutable event.

    Raises:
        EncodingError: If the draft cannot be canonically serialized, the
            key is malformed, or the draft pubkey does not belong to the key.
        SignatureError: If the curve library rejects the key.
    """
    signatures = signatures or SignatureService()
    draft = replace(draft, pubkey=draft.pubkey.lower())
    if signatures.x_only_public_key(private_key) != draft.pubkey:
        raise EncodingError("draft pubkey does not match the private key")

    event_id = compute_event_id(draft)
    sig = signatures.sign(event_id, private_key)
    return Event(
        id=event_id,
        pubkey=draft.pubkey,
        created_at=draft.created_at,
        kind=draft.kind,
        tags=draft.tags,
        content=draft.content,
        sig=sig.hex(),
    )


# =============================================================================
# Kind-specific helpers
# =============================================================================


def build_text_note(
    pubkey: str,
    content: str,
    tags: Sequence[Sequence[str]] = (),
    created_at: int | None = None,
) -> EventDraft:
    """Build a Kind 1 text note per NIP-01."""
    return build_event(pubkey, EventKind.TEXT_NOTE, content, tags, created_at)


def build_auth_event(
    pubkey: str,
    relay: Relay,
    challenge: str,
    created_at: int | None = None,
) -> EventDraft:
    """Build a Kind 22242 authentication reply per NIP-42."""
    return build_event(
        pubkey,
        EventKind.CLIENT_AUTH,
        tags=(("relay", relay.url), ("challenge", challenge)),
        created_at=created_at,
    )
