"""
NIP-01 canonical serialization and event id computation.

The id of an event is the SHA-256 of the UTF-8 bytes of::

    [0,<pubkey>,<created_at>,<kind>,<tags>,<content>]

serialized with no whitespace, integers as integers, non-ASCII characters
written literally, and only the escapes JSON mandates (``\\"``, ``\\\\``,
``\\n``, ``\\r``, ``\\t``, ``\\b``, ``\\f``, other control characters as
``\\u00XX``). ``json.dumps`` with ``ensure_ascii=False`` and compact
separators produces exactly that, so the hash preimage is reproducible
bit for bit across implementations.

Attributes:
    canonical_serialize: Identity preimage of an event.
    compute_id: SHA-256 hex digest of a preimage.
    compute_event_id: Convenience wrapper taking an event or draft.
    serialize_complete: Full event object for transmission.

See Also:
    [nostrlink.nips.nip01.validation][]: Recomputes ids to check the
        identity invariant.
    [nostrlink.nips.event_builders][]: Computes the id of a new draft before
        signing it.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from nostrlink.core.exceptions import EncodingError


if TYPE_CHECKING:
    from nostrlink.models.event import Event, EventDraft


_SEPARATORS = (",", ":")


def _dumps(value: Any) -> bytes:
    try:
        return json.dumps(value, separators=_SEPARATORS, ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError(f"value is not encodable as UTF-8: {e.reason}") from e


def _check_text(value: Any, name: str) -> None:
    if not isinstance(value, str):
        raise EncodingError(f"{name} must be a str, got {type(value).__name__}")


def _check_count(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise EncodingError(f"{name} must be a non-negative int, got {value!r}")


def _normalize_tags(tags: Any) -> list[list[str]]:
    if isinstance(tags, (str, bytes)) or not isinstance(tags, Sequence):
        raise EncodingError(f"tags must be a sequence of sequences, got {type(tags).__name__}")
    result: list[list[str]] = []
    for index, tag in enumerate(tags):
        if isinstance(tag, (str, bytes)) or not isinstance(tag, Sequence):
            raise EncodingError(f"tag {index} must be a sequence, got {type(tag).__name__}")
        if not tag:
            raise EncodingError(f"tag {index} is empty")
        for value in tag:
            _check_text(value, f"tag {index} value")
        result.append(list(tag))
    return result


def canonical_serialize(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Sequence[Sequence[str]],
    content: str,
) -> bytes:
    """Return the canonical identity preimage of an event.

    Args:
        pubkey: Author public key hex. Serialized as given; callers that
            need a canonical id pass lowercase hex.
        created_at: Unix timestamp in seconds.
        kind: Event kind.
        tags: Tag sequences; every inner sequence must be non-empty.
        content: Event content.

    Returns:
        The UTF-8 bytes of ``[0,pubkey,created_at,kind,tags,content]``.

    Raises:
        EncodingError: If a field has the wrong type, a tag is empty, or a
            string is not encodable as UTF-8 (e.g. a lone surrogate).
    """
    _check_text(pubkey, "pubkey")
    _check_count(created_at, "created_at")
    _check_count(kind, "kind")
    _check_text(content, "content")
    return _dumps([0, pubkey, created_at, kind, _normalize_tags(tags), content])


def compute_id(serialized: bytes) -> str:
    """Return the lowercase hex SHA-256 of *serialized* (64 characters)."""
    return hashlib.sha256(serialized).hexdigest()


def compute_event_id(event: Event | EventDraft) -> str:
    """Compute the id an event or draft should carry.

    Raises:
        EncodingError: Propagated from
            [canonical_serialize()][nostrlink.nips.nip01.codec.canonical_serialize].
    """
    return compute_id(
        canonical_serialize(event.pubkey, event.created_at, event.kind, event.tags, event.content)
    )


def serialize_complete(event: Event) -> bytes:
    """Serialize the full event object for transmission or storage.

    Keys are emitted in the fixed order ``id, pubkey, created_at, kind, tags,
    content, sig`` with hex fields lowercased.

    Raises:
        EncodingError: If a string is not encodable as UTF-8.
    """
    return _dumps(event.to_dict())
