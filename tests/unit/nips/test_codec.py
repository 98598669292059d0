"""
Unit tests for nips.nip01.codec module.

Tests:
- canonical_serialize() byte layout, escaping, and UTF-8 handling
- Encoding errors for ill-typed fields, empty tags, and lone surrogates
- compute_id() / compute_event_id() determinism and sensitivity
- serialize_complete() key order
"""

import hashlib
import json
from dataclasses import replace

import pytest

from nostrlink.core.exceptions import EncodingError
from nostrlink.models import Event, EventDraft
from nostrlink.nips.nip01 import (
    canonical_serialize,
    compute_event_id,
    compute_id,
    serialize_complete,
)


PUBKEY = "ab" * 32


# =============================================================================
# canonical_serialize Tests
# =============================================================================


class TestCanonicalSerialize:
    """The identity preimage is compact JSON of [0,pubkey,created_at,kind,tags,content]."""

    def test_layout(self) -> None:
        data = canonical_serialize(PUBKEY, 1700000000, 1, [["e", "x"]], "hi")
        assert data == f'[0,"{PUBKEY}",1700000000,1,[["e","x"]],"hi"]'.encode()

    def test_empty_tags(self) -> None:
        data = canonical_serialize(PUBKEY, 1, 1, [], "")
        assert data == f'[0,"{PUBKEY}",1,1,[],""]'.encode()

    def test_non_ascii_kept_raw(self) -> None:
        data = canonical_serialize(PUBKEY, 1, 1, [], "héllo 🚀")
        assert "héllo 🚀".encode() in data

    def test_control_characters_escaped(self) -> None:
        data = canonical_serialize(PUBKEY, 1, 1, [], 'a"b\\c\nd')
        assert data.endswith(b'"a\\"b\\\\c\\nd"]')

    def test_tuple_tags_equal_list_tags(self) -> None:
        assert canonical_serialize(PUBKEY, 1, 1, (("e", "x"),), "") == canonical_serialize(
            PUBKEY, 1, 1, [["e", "x"]], ""
        )

    def test_lone_surrogate_rejected(self) -> None:
        with pytest.raises(EncodingError, match="UTF-8"):
            canonical_serialize(PUBKEY, 1, 1, [], "\ud800")

    def test_empty_tag_rejected(self) -> None:
        with pytest.raises(EncodingError, match="tag 0 is empty"):
            canonical_serialize(PUBKEY, 1, 1, [[]], "")

    def test_non_str_tag_value_rejected(self) -> None:
        with pytest.raises(EncodingError, match="tag 0 value"):
            canonical_serialize(PUBKEY, 1, 1, [["e", 5]], "")

    def test_string_tag_rejected(self) -> None:
        with pytest.raises(EncodingError, match="tag 0 must be a sequence"):
            canonical_serialize(PUBKEY, 1, 1, ["e"], "")

    def test_non_str_pubkey_rejected(self) -> None:
        with pytest.raises(EncodingError, match="pubkey"):
            canonical_serialize(None, 1, 1, [], "")  # type: ignore[arg-type]

    @pytest.mark.parametrize("value", [-1, True, 1.0, "1"])
    def test_bad_kind_rejected(self, value: object) -> None:
        with pytest.raises(EncodingError, match="kind"):
            canonical_serialize(PUBKEY, 1, value, [], "")  # type: ignore[arg-type]


# =============================================================================
# Identifier Tests
# =============================================================================


class TestComputeId:
    """Ids are lowercase hex SHA-256 of the canonical bytes."""

    def test_sha256_of_empty(self) -> None:
        assert compute_id(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_matches_hashlib(self, draft: EventDraft) -> None:
        expected = hashlib.sha256(
            canonical_serialize(draft.pubkey, draft.created_at, draft.kind, draft.tags, draft.content)
        ).hexdigest()
        assert compute_event_id(draft) == expected

    def test_deterministic(self, draft: EventDraft) -> None:
        assert compute_event_id(draft) == compute_event_id(draft)

    def test_lowercase_64_chars(self, draft: EventDraft) -> None:
        event_id = compute_event_id(draft)
        assert len(event_id) == 64
        assert event_id == event_id.lower()

    def test_event_and_draft_agree(self, signed_event: Event) -> None:
        assert compute_event_id(signed_event) == compute_event_id(signed_event.draft)
        assert compute_event_id(signed_event) == signed_event.id

    @pytest.mark.parametrize(
        "change",
        [
            {"content": "other"},
            {"kind": 2},
            {"created_at": 1700000001},
            {"tags": (("e", "ab" * 32),)},
            {"pubkey": "cd" * 32},
        ],
    )
    def test_any_field_changes_id(self, draft: EventDraft, change: dict[str, object]) -> None:
        assert compute_event_id(replace(draft, **change)) != compute_event_id(draft)


# =============================================================================
# serialize_complete Tests
# =============================================================================


class TestSerializeComplete:
    """The full event serializes with fixed key order and compact separators."""

    def test_round_trips_through_json(self, signed_event: Event) -> None:
        data = serialize_complete(signed_event)
        assert json.loads(data) == signed_event.to_dict()

    def test_key_order_and_compact(self, signed_event: Event) -> None:
        text = serialize_complete(signed_event).decode()
        assert text.startswith('{"id":"')
        assert text.index('"pubkey"') < text.index('"created_at"') < text.index('"sig"')
        assert ", " not in text
