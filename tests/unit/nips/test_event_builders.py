"""
Unit tests for nips.event_builders module.

Tests:
- build_event() defaults and pubkey normalization
- sign_event() id/signature production and key mismatch detection
- Kind-specific helpers (text note, NIP-42 auth)
"""

import time

import pytest

from nostrlink.core.exceptions import EncodingError
from nostrlink.models import EventDraft, EventKind, Relay
from nostrlink.nips import build_auth_event, build_event, build_text_note, sign_event
from nostrlink.nips.nip01 import SignatureService, compute_event_id, validate_event_complete


class TestBuildEvent:
    """Drafts are stamped and normalized."""

    def test_created_at_defaults_to_now(self, public_key: str) -> None:
        before = int(time.time())
        draft = build_event(public_key, 1)
        assert before <= draft.created_at <= int(time.time())

    def test_explicit_created_at(self, public_key: str) -> None:
        assert build_event(public_key, 1, created_at=42).created_at == 42

    def test_pubkey_lowercased(self, public_key: str) -> None:
        assert build_event(public_key.upper(), 1).pubkey == public_key

    def test_tags_frozen(self, public_key: str) -> None:
        draft = build_event(public_key, 1, tags=[["t", "nostr"]])
        assert draft.tags == (("t", "nostr"),)


class TestSignEvent:
    """sign_event() turns a draft into a verified Event."""

    def test_signed_event_is_valid(
        self, draft: EventDraft, private_key: str, signatures: SignatureService
    ) -> None:
        event = sign_event(draft, private_key, signatures)
        assert validate_event_complete(event, signatures).is_valid
        assert event.id == compute_event_id(draft)
        assert len(event.sig) == 128

    def test_deterministic(self, draft: EventDraft, private_key: str) -> None:
        assert sign_event(draft, private_key) == sign_event(draft, private_key)

    def test_uppercase_draft_pubkey(
        self, draft: EventDraft, private_key: str, signatures: SignatureService
    ) -> None:
        upper = EventDraft(
            pubkey=draft.pubkey.upper(),
            created_at=draft.created_at,
            kind=draft.kind,
            tags=draft.tags,
            content=draft.content,
        )
        event = sign_event(upper, private_key, signatures)
        assert event.pubkey == draft.pubkey
        assert validate_event_complete(event, signatures).is_valid

    def test_key_mismatch(self, draft: EventDraft) -> None:
        with pytest.raises(EncodingError, match="does not match the private key"):
            sign_event(draft, "00" * 31 + "02")

    def test_unserializable_draft(self, public_key: str, private_key: str) -> None:
        draft = EventDraft(pubkey=public_key, created_at=1, kind=1, tags=((),))
        with pytest.raises(EncodingError, match="empty"):
            sign_event(draft, private_key)


class TestKindHelpers:
    def test_text_note(self, public_key: str) -> None:
        draft = build_text_note(public_key, "gm", created_at=5)
        assert draft.kind == EventKind.TEXT_NOTE
        assert draft.content == "gm"

    def test_auth_event(self, public_key: str, private_key: str) -> None:
        relay = Relay("wss://relay.example.com/")
        draft = build_auth_event(public_key, relay, "challenge-1", created_at=5)
        assert draft.kind == EventKind.CLIENT_AUTH
        assert draft.tags == (("relay", "wss://relay.example.com"), ("challenge", "challenge-1"))
        assert draft.content == ""
        assert sign_event(draft, private_key).kind == 22242
