"""Shared validation helpers for frozen dataclass models.

Private module -- not part of the public API. Used by ``__post_init__``
methods in sibling model modules to enforce runtime type constraints and
deep immutability, and by the NIP-01 validators for hex checks.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any


_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def validate_instance(value: Any, expected: type | tuple[type, ...], name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        names = (
            " or ".join(t.__name__ for t in expected)
            if isinstance(expected, tuple)
            else expected.__name__
        )
        article = "an" if names[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {names}, got {type(value).__name__}")


def validate_int(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_optional_int(value: Any, name: str) -> None:
    """Like [validate_int][nostrlink.models._validation.validate_int] but accepts ``None``."""
    if value is not None:
        validate_int(value, name)


def is_hex(value: Any, length: int | None = None) -> bool:
    """Return True if *value* is a non-empty hex string of the given length."""
    if not isinstance(value, str) or not value:
        return False
    if length is not None and len(value) != length:
        return False
    return _HEX_RE.match(value) is not None


def freeze_str_tuple(values: Iterable[Any] | None, name: str) -> tuple[str, ...]:
    """Copy *values* into a tuple of strings, rejecting bare strings and non-str items."""
    if values is None:
        return ()
    if isinstance(values, (str, bytes)):
        raise TypeError(f"{name} must be a sequence of str, not a single {type(values).__name__}")
    result = tuple(values)
    for item in result:
        if not isinstance(item, str):
            raise TypeError(f"{name} items must be str, got {type(item).__name__}")
    return result


def freeze_tags(tags: Iterable[Any] | None, name: str = "tags") -> tuple[tuple[str, ...], ...]:
    """Copy a list of tag lists into nested tuples of strings.

    Empty inner sequences are kept as-is: rejecting them is the job of the
    codec and the validator, which report it with a proper reason.
    """
    if tags is None:
        return ()
    if isinstance(tags, (str, bytes)):
        raise TypeError(f"{name} must be a sequence of sequences")
    return tuple(freeze_str_tuple(tag, f"{name} entry") for tag in tags)

