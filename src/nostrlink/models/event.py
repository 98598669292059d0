"""
Immutable Nostr event models.

[EventDraft][nostrlink.models.event.EventDraft] is the unsigned form a caller
builds; [Event][nostrlink.models.event.Event] is the signed form that travels
over the wire. Both are frozen dataclasses: once signed, an event is never
mutated.

Construction only enforces Python types (strings, non-negative integers,
tuples of string tuples). Protocol rules such as hex lengths, content size,
and the identity invariant are checked by
[nostrlink.nips.nip01.validation][], so that a malformed event received from a
relay can still be represented and rejected with a human-readable reason.

See Also:
    [nostrlink.nips.nip01.codec][]: Canonical serialization and id computation.
    [nostrlink.nips.event_builders][]: Turns an
        [EventDraft][nostrlink.models.event.EventDraft] into a signed
        [Event][nostrlink.models.event.Event].
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ._validation import freeze_tags, validate_instance, validate_int


@dataclass(frozen=True, slots=True)
class EventDraft:
    """Unsigned event: the identity-relevant fields only.

    Attributes:
        pubkey: Author x-only public key (64 hex characters).
        created_at: Unix timestamp in seconds.
        kind: Event kind (see [EventKind][nostrlink.models.constants.EventKind]).
        tags: Ordered tag lists; ``tags[i][0]`` is the tag name.
        content: Arbitrary UTF-8 text.

    Examples:
        ```python
        draft = EventDraft(pubkey=pk, created_at=1700000000, kind=1, content="hello")
        draft.tags   # ()
        ```
    """

    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...] = ()
    content: str = ""

    def __post_init__(self) -> None:
        validate_instance(self.pubkey, str, "pubkey")
        validate_int(self.created_at, "created_at")
        validate_int(self.kind, "kind")
        validate_instance(self.content, str, "content")
        object.__setattr__(self, "tags", freeze_tags(self.tags))


@dataclass(frozen=True, slots=True)
class Event:
    """Signed Nostr event as exchanged with relays.

    Attributes:
        id: SHA-256 of the canonical serialization, hex.
        pubkey: Author x-only public key, hex.
        created_at: Unix timestamp in seconds.
        kind: Event kind.
        tags: Ordered tag tuples.
        content: Event content.
        sig: 64-byte signature over ``id``, hex.

    Raises:
        TypeError: If a field has the wrong Python type.
        ValueError: If ``created_at`` or ``kind`` is negative.

    Note:
        Tags are stored as nested tuples so the instance is hashable and
        deeply immutable. [to_dict()][nostrlink.models.event.Event.to_dict]
        converts them back to lists for JSON.
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str

    def __post_init__(self) -> None:
        for name in ("id", "pubkey", "content", "sig"):
            validate_instance(getattr(self, name), str, name)
        validate_int(self.created_at, "created_at")
        validate_int(self.kind, "kind")
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    @property
    def draft(self) -> EventDraft:
        """The identity-relevant fields of this event as an [EventDraft][nostrlink.models.event.EventDraft]."""
        return EventDraft(
            pubkey=self.pubkey,
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
        )

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag called *name* (e.g. ``"e"`` or ``"p"``)."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def to_dict(self) -> dict[str, Any]:
        """Return the wire object with fixed key order and lowercase hex fields."""
        return {
            "id": self.id.lower(),
            "pubkey": self.pubkey.lower(),
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig.lower(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        """Build an event from a decoded wire object.

        Missing string fields default to ``""`` and missing integers to
        ``0`` so that the validator, not the parser, reports absent values.
        Unknown keys are ignored.

        Raises:
            TypeError: If *data* is not a dict or a field has the wrong type.
            ValueError: If ``created_at`` or ``kind`` is negative.
        """
        validate_instance(data, dict, "event")
        tags = data.get("tags", [])
        validate_instance(tags, list, "tags")
        return cls(
            id=data.get("id", ""),
            pubkey=data.get("pubkey", ""),
            created_at=data.get("created_at", 0),
            kind=data.get("kind", 0),
            tags=tuple(_as_tag(tag) for tag in tags),
            content=data.get("content", ""),
            sig=data.get("sig", ""),
        )

    def __str__(self) -> str:
        return f"Event(id={self.id[:16]}..., kind={self.kind})"


def _as_tag(tag: Any) -> tuple[str, ...]:
    validate_instance(tag, list, "tag")
    return tuple(tag)

