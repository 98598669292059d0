"""
Subscription filter model.

A [Filter][nostrlink.models.filter.Filter] is the query a client sends in a
``REQ`` frame. Every field is optional; an unset field matches everything.
Tag filters are keyed by the single-letter tag name (``"e"``, ``"p"``, ...)
and serialized on the wire with a ``#`` prefix (``"#e"``).

Construction checks only Python types. Protocol rules (hex lengths,
``since <= until``, ``limit > 0``) are reported by
[validate_filter][nostrlink.nips.nip01.validation.validate_filter].
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ._validation import (
    freeze_str_tuple,
    validate_instance,
    validate_int,
    validate_optional_int,
)


if TYPE_CHECKING:
    from .event import Event


_TAG_PREFIX = "#"


@dataclass(frozen=True, slots=True)
class Filter:
    """Immutable subscription filter.

    Attributes:
        ids: Event ids (64 hex characters each).
        authors: Author public keys (64 hex characters each).
        kinds: Event kinds.
        tags: Tag name (without ``#``) to accepted values.
        since: Lower bound on ``created_at``, inclusive.
        until: Upper bound on ``created_at``, inclusive.
        limit: Maximum number of stored events the relay should return.

    Examples:
        ```python
        f = Filter(kinds=(1,), tags={"p": ["ab" * 32]}, limit=10)
        f.to_dict()
        # {'kinds': [1], '#p': ['abab...'], 'limit': 10}
        ```
    """

    ids: tuple[str, ...] = ()
    authors: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    tags: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", freeze_str_tuple(self.ids, "ids"))
        object.__setattr__(self, "authors", freeze_str_tuple(self.authors, "authors"))

        kinds = tuple(self.kinds or ())
        for kind in kinds:
            validate_int(kind, "kinds item")
        object.__setattr__(self, "kinds", kinds)

        validate_instance(self.tags or {}, Mapping, "tags")
        frozen: dict[str, tuple[str, ...]] = {}
        for name, values in (self.tags or {}).items():
            validate_instance(name, str, "tag filter name")
            frozen[name.removeprefix(_TAG_PREFIX)] = freeze_str_tuple(values, f"#{name}")
        object.__setattr__(self, "tags", MappingProxyType(frozen))

        validate_optional_int(self.since, "since")
        validate_optional_int(self.until, "until")
        validate_optional_int(self.limit, "limit")

    def __hash__(self) -> int:
        return hash(
            (
                self.ids,
                self.authors,
                self.kinds,
                tuple(sorted(self.tags.items())),
                self.since,
                self.until,
                self.limit,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the wire object; unset fields are omitted."""
        data: dict[str, Any] = {}
        if self.ids:
            data["ids"] = [value.lower() for value in self.ids]
        if self.authors:
            data["authors"] = [value.lower() for value in self.authors]
        if self.kinds:
            data["kinds"] = list(self.kinds)
        for name, values in self.tags.items():
            data[f"{_TAG_PREFIX}{name}"] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Filter:
        """Build a filter from its wire object.

        Keys starting with ``#`` become tag filters. Unknown keys are
        ignored.

        Raises:
            TypeError: If a field has the wrong type.
            ValueError: If an integer field is negative.
        """
        validate_instance(data, Mapping, "filter")
        return cls(
            ids=data.get("ids") or (),
            authors=data.get("authors") or (),
            kinds=data.get("kinds") or (),
            tags={k[1:]: v for k, v in data.items() if k.startswith(_TAG_PREFIX)},
            since=data.get("since"),
            until=data.get("until"),
            limit=data.get("limit"),
        )

    def matches(self, event: Event) -> bool:
        """Return True if *event* satisfies every set field of this filter.

        Id and author comparisons are case-insensitive. ``since`` and
        ``until`` are inclusive. For each tag filter, at least one of the
        event's tags with that name must carry one of the listed values.
        ``limit`` does not affect matching.
        """
        if self.ids and event.id.lower() not in {v.lower() for v in self.ids}:
            return False
        if self.authors and event.pubkey.lower() not in {v.lower() for v in self.authors}:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, values in self.tags.items():
            if values and not set(event.tag_values(name)).intersection(values):
                return False
        return True
