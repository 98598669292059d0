"""
Pytest configuration and shared fixtures for nostrlink tests.

Provides:
- A deterministic key pair (private scalar 1) and a signature service
- Signed sample events and their wire dictionaries
- In-memory relay channels (registered from ``fixtures.channels``)
"""

from __future__ import annotations

import logging
from typing import Any

import pytest

from nostrlink.models import Event, EventDraft
from nostrlink.nips import SignatureService, sign_event


pytest_plugins = ["fixtures.channels"]


PRIVATE_KEY = "00" * 31 + "01"
PUBLIC_KEY = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
OTHER_PRIVATE_KEY = "00" * 31 + "02"


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Key Fixtures
# ============================================================================


@pytest.fixture
def private_key() -> str:
    """Private key with scalar value 1 (its public key is the generator point)."""
    return PRIVATE_KEY


@pytest.fixture
def public_key() -> str:
    """x-only public key matching ``private_key``."""
    return PUBLIC_KEY


@pytest.fixture
def signatures() -> SignatureService:
    return SignatureService()


# ============================================================================
# Event Fixtures
# ============================================================================


@pytest.fixture
def draft() -> EventDraft:
    """Unsigned text note with a couple of tags."""
    return EventDraft(
        pubkey=PUBLIC_KEY,
        created_at=1700000000,
        kind=1,
        tags=(("e", "ab" * 32), ("p", "cd" * 32, "wss://relay.example.com")),
        content="hello nostr",
    )


@pytest.fixture
def signed_event(draft: EventDraft, signatures: SignatureService) -> Event:
    """``draft`` signed with ``private_key``."""
    return sign_event(draft, PRIVATE_KEY, signatures)


@pytest.fixture
def event_dict(signed_event: Event) -> dict[str, Any]:
    """Wire object of ``signed_event``."""
    return signed_event.to_dict()


@pytest.fixture
def make_event(signatures: SignatureService):
    """Factory for signed text notes with distinct content."""

    def _make(content: str = "note", created_at: int = 1700000000, kind: int = 1) -> Event:
        draft = EventDraft(
            pubkey=PUBLIC_KEY, created_at=created_at, kind=kind, content=content
        )
        return sign_event(draft, PRIVATE_KEY, signatures)

    return _make
