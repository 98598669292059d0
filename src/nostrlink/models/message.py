"""
Typed relay-to-client messages.

Every inbound frame is parsed exactly once by
[parse_relay_message][nostrlink.nips.nip01.protocol.parse_relay_message] into
one of the variants below; call sites then dispatch on the variant type
(``isinstance`` or ``match``) and never index raw JSON arrays.

The [RelayMessage][nostrlink.models.message.RelayMessage] alias is the union
of all variants. Callers must treat
[UnknownMessage][nostrlink.models.message.UnknownMessage] as ignorable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeAlias

from .event import Event


@dataclass(frozen=True, slots=True)
class EventMessage:
    """``["EVENT", <sub-id>, <event>]`` carrying an already validated event."""

    subscription_id: str
    event: Event


@dataclass(frozen=True, slots=True)
class NoticeMessage:
    """``["NOTICE", <text>]``: human-readable message from the relay."""

    text: str


@dataclass(frozen=True, slots=True)
class EndOfStoredEventsMessage:
    """``["EOSE", <sub-id>]``: stored events are exhausted, live events follow."""

    subscription_id: str


@dataclass(frozen=True, slots=True)
class OkMessage:
    """``["OK", <event-id>, <bool>, <reason?>]``: result of a publish.

    Attributes:
        event_id: Id of the event the relay is answering for.
        success: Whether the relay accepted the event.
        reason: Machine-prefixed reason (``"duplicate: ..."``), empty if omitted.
    """

    event_id: str
    success: bool
    reason: str = ""


@dataclass(frozen=True, slots=True)
class AuthChallengeMessage:
    """``["AUTH", <challenge>]``: NIP-42 authentication challenge."""

    challenge: str


@dataclass(frozen=True, slots=True)
class ClosedMessage:
    """``["CLOSED", <sub-id>, <reason>]``: the relay ended a subscription."""

    subscription_id: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class UnknownMessage:
    """Frame with a discriminator this client does not understand.

    Attributes:
        frame: The decoded JSON array, kept for logging and debugging.
    """

    frame: tuple[Any, ...]

    @property
    def message_type(self) -> str:
        return str(self.frame[0])


RelayMessage: TypeAlias = (
    EventMessage
    | NoticeMessage
    | EndOfStoredEventsMessage
    | OkMessage
    | AuthChallengeMessage
    | ClosedMessage
    | UnknownMessage
)
