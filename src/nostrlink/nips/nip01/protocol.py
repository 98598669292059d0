"""
NIP-01 relay wire protocol.

Every frame is a JSON array whose first element is a string discriminator.

| Direction | Frame | Shape |
|---|---|---|
| out | publish | ``["EVENT", <event>]`` |
| out | subscribe | ``["REQ", <sub-id>, <filter>]`` |
| out | unsubscribe | ``["CLOSE", <sub-id>]`` |
| out | auth reply | ``["AUTH", <event>]`` |
| in | event | ``["EVENT", <sub-id>, <event>]`` |
| in | notice | ``["NOTICE", <text>]`` |
| in | end of stored events | ``["EOSE", <sub-id>]`` |
| in | publish result | ``["OK", <event-id>, <bool>, <reason?>]`` |
| in | auth challenge | ``["AUTH", <challenge>]`` |
| in | subscription closed | ``["CLOSED", <sub-id>, <reason>]`` |

[parse_relay_message()][nostrlink.nips.nip01.protocol.parse_relay_message]
validates the shape of a frame once and returns a typed
[RelayMessage][nostrlink.models.message.RelayMessage]. Event payloads are
always validated before they are exposed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from nostrlink.core.exceptions import ProtocolParseError
from nostrlink.models.constants import MessageType
from nostrlink.models.event import Event
from nostrlink.models.filter import Filter
from nostrlink.models.message import (
    AuthChallengeMessage,
    ClosedMessage,
    EndOfStoredEventsMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    RelayMessage,
    UnknownMessage,
)

from .validation import validate_event, verify_event_signature


if TYPE_CHECKING:
    from .signature import SignatureService


logger = logging.getLogger(__name__)

_SEPARATORS = (",", ":")


# =============================================================================
# Parsing
# =============================================================================


def _require(frame: list[Any], length: int) -> None:
    if len(frame) < length:
        raise ProtocolParseError(
            f"{frame[0]} frame needs at least {length} elements, got {len(frame)}"
        )


def _text(frame: list[Any], index: int, name: str) -> str:
    value = frame[index]
    if not isinstance(value, str):
        raise ProtocolParseError(f"{frame[0]} {name} must be a string, got {type(value).__name__}")
    return value


def _parse_event(frame: list[Any], signatures: SignatureService | None) -> EventMessage:
    _require(frame, 3)
    subscription_id = _text(frame, 1, "subscription id")
    try:
        event = Event.from_dict(frame[2])
    except (TypeError, ValueError) as e:
        raise ProtocolParseError(
            f"EVENT payload is malformed: {e}", subscription_id=subscription_id
        ) from e

    validate_event(event).raise_for_failure(subscription_id)
    if signatures is not None:
        verify_event_signature(event, signatures).raise_for_failure(subscription_id)
    return EventMessage(subscription_id=subscription_id, event=event)


def _parse_notice(frame: list[Any]) -> NoticeMessage:
    _require(frame, 2)
    return NoticeMessage(text=_text(frame, 1, "text"))


def _parse_eose(frame: list[Any]) -> EndOfStoredEventsMessage:
    _require(frame, 2)
    return EndOfStoredEventsMessage(subscription_id=_text(frame, 1, "subscription id"))


def _parse_ok(frame: list[Any]) -> OkMessage:
    _require(frame, 3)
    event_id = _text(frame, 1, "event id")
    success = frame[2]
    if not isinstance(success, bool):
        raise ProtocolParseError(f"OK success flag must be a boolean, got {type(success).__name__}")
    reason = _text(frame, 3, "reason") if len(frame) > 3 else ""
    return OkMessage(event_id=event_id, success=success, reason=reason)


def _parse_auth(frame: list[Any]) -> AuthChallengeMessage:
    _require(frame, 2)
    return AuthChallengeMessage(challenge=_text(frame, 1, "challenge"))


def _parse_closed(frame: list[Any]) -> ClosedMessage:
    _require(frame, 2)
    subscription_id = _text(frame, 1, "subscription id")
    reason = _text(frame, 2, "reason") if len(frame) > 2 else ""
    return ClosedMessage(subscription_id=subscription_id, reason=reason)


_PARSERS: dict[str, Callable[[list[Any]], RelayMessage]] = {
    MessageType.NOTICE: _parse_notice,
    MessageType.EOSE: _parse_eose,
    MessageType.OK: _parse_ok,
    MessageType.AUTH: _parse_auth,
    MessageType.CLOSED: _parse_closed,
}


def parse_relay_message(
    text: str | bytes,
    *,
    signatures: SignatureService | None = None,
) -> RelayMessage:
    """Parse one inbound frame into a typed message.

    Args:
        text: Raw frame as received from the channel.
        signatures: When given, ``EVENT`` payloads also get their signature
            verified. Structural and identity checks always run.

    Returns:
        The typed message. An unrecognized discriminator yields
        [UnknownMessage][nostrlink.models.message.UnknownMessage].

    Raises:
        ProtocolParseError: Not JSON, nested beyond the decoder limit, not
            a non-empty array, a non-string discriminator, or a known
            discriminator with missing or ill-typed elements.
        StructuralInvalidError: ``EVENT`` payload fails a structural or
            identity check. Carries the subscription id.
        SignatureInvalidError: ``EVENT`` payload signature does not verify.
            Carries the subscription id.
    """
    try:
        frame = json.loads(text)
    except (ValueError, TypeError) as e:
        raise ProtocolParseError(f"Frame is not valid JSON: {e}") from e
    except RecursionError as e:
        raise ProtocolParseError("Frame is nested too deeply") from e

    if not isinstance(frame, list):
        raise ProtocolParseError(f"Frame must be a JSON array, got {type(frame).__name__}")
    if not frame:
        raise ProtocolParseError("Frame is an empty array")
    if not isinstance(frame[0], str):
        raise ProtocolParseError(
            f"Frame discriminator must be a string, got {type(frame[0]).__name__}"
        )

    if frame[0] == MessageType.EVENT:
        return _parse_event(frame, signatures)
    parser = _PARSERS.get(frame[0])
    if parser is None:
        logger.debug("unknown_message type=%s", frame[0])
        return UnknownMessage(frame=tuple(frame))
    return parser(frame)


# =============================================================================
# Building
# =============================================================================


def _frame(*parts: Any) -> str:
    return json.dumps(list(parts), separators=_SEPARATORS, ensure_ascii=False)


def _require_event(event: Event | None) -> Event:
    if event is None:
        raise ValueError("event is required")
    if not isinstance(event, Event):
        raise TypeError(f"event must be an Event, got {type(event).__name__}")
    if not event.id or not event.sig:
        raise ValueError("event must be signed (id and sig are required)")
    return event


def _require_subscription_id(subscription_id: str | None) -> str:
    if not subscription_id:
        raise ValueError("subscription id is required")
    if not isinstance(subscription_id, str):
        raise TypeError(f"subscription id must be a str, got {type(subscription_id).__name__}")
    return subscription_id


def build_publish(event: Event) -> str:
    """Return ``["EVENT",<event>]``.

    Raises:
        ValueError: If *event* is missing or unsigned.
    """
    return _frame(MessageType.EVENT, _require_event(event).to_dict())


def build_subscribe(subscription_id: str, filter: Filter) -> str:  # noqa: A002
    """Return ``["REQ",<sub-id>,<filter>]``.

    Raises:
        ValueError: If the subscription id or filter is missing.
    """
    subscription_id = _require_subscription_id(subscription_id)
    if filter is None:
        raise ValueError("filter is required")
    return _frame(MessageType.REQ, subscription_id, filter.to_dict())


def build_unsubscribe(subscription_id: str) -> str:
    """Return ``["CLOSE",<sub-id>]``.

    Raises:
        ValueError: If the subscription id is missing.
    """
    return _frame(MessageType.CLOSE, _require_subscription_id(subscription_id))


def build_auth(event: Event) -> str:
    """Return the NIP-42 reply ``["AUTH",<event>]`` for a signed kind 22242 event.

    Raises:
        ValueError: If *event* is missing or unsigned.
    """
    return _frame(MessageType.AUTH, _require_event(event).to_dict())
