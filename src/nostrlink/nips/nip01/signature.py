"""
Event signature production and verification.

Signatures are 64 bytes: ``r || s``, each a 32-byte big-endian integer,
left-zero-padded. ``s`` is always normalized to the lower of its two valid
values (``s <= n / 2``) so that every message has exactly one canonical
signature. Nonces are derived deterministically (RFC 6979), so signing the
same id with the same key twice yields the same bytes.

Public keys are stored on events as 32-byte x-only values, while curve
verification needs a full point. Verification therefore tries the key with
the even-parity prefix ``02`` first and the odd-parity prefix ``03`` second.

See Also:
    [Signer][nostrlink.utils.signer.Signer]: The curve capability this
        module delegates to.
    [verify_event_signature()][nostrlink.nips.nip01.validation.verify_event_signature]:
        Event-level wrapper returning a reasoned result.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from nostrlink.core.exceptions import EncodingError, SignatureError
from nostrlink.utils.signer import SECP256K1_ORDER, Secp256k1Signer


if TYPE_CHECKING:
    from nostrlink.utils.signer import Signer


logger = logging.getLogger(__name__)

HASH_SIZE = 32
PRIVATE_KEY_SIZE = 32
XONLY_PUBKEY_SIZE = 32
COMPRESSED_PUBKEY_SIZE = 33
SIGNATURE_SIZE = 64

_HALF_ORDER = SECP256K1_ORDER // 2
_PARITY_PREFIXES = (b"\x02", b"\x03")


def to_bytes(value: bytes | str, name: str, sizes: tuple[int, ...]) -> bytes:
    """Accept raw bytes or a hex string and check the decoded length.

    Raises:
        EncodingError: If *value* is malformed hex, of another type, or of a
            length not listed in *sizes*.
    """
    if isinstance(value, str):
        try:
            raw = bytes.fromhex(value)
        except ValueError:
            raise EncodingError(f"{name} is not valid hex") from None
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise EncodingError(f"{name} must be bytes or a hex str, got {type(value).__name__}")
    if len(raw) not in sizes:
        expected = " or ".join(str(size) for size in sizes)
        raise EncodingError(f"{name} must be {expected} bytes, got {len(raw)}")
    return raw


def _normalize_s(s: int) -> int:
    return SECP256K1_ORDER - s if s > _HALF_ORDER else s


class SignatureService:
    """Produces and verifies event signatures through a [Signer][nostrlink.utils.signer.Signer].

    Stateless apart from the signer reference; safe to share between
    connections.

    Args:
        signer: Curve capability. Defaults to
            [Secp256k1Signer][nostrlink.utils.signer.Secp256k1Signer].

    Examples:
        ```python
        service = SignatureService()
        sig = service.sign(event.id, private_key_hex)
        service.verify(event.id, sig, event.pubkey)   # True
        ```
    """

    def __init__(self, signer: Signer | None = None) -> None:
        self._signer: Signer = signer if signer is not None else Secp256k1Signer()

    @property
    def signer(self) -> Signer:
        return self._signer

    def sign(self, event_id: bytes | str, private_key: bytes | str) -> bytes:
        """Return the 64-byte low-S signature of *event_id*.

        Raises:
            EncodingError: If the id or key is malformed.
            SignatureError: If the curve library rejects the key.
        """
        message = to_bytes(event_id, "event id", (HASH_SIZE,))
        secret = to_bytes(private_key, "private key", (PRIVATE_KEY_SIZE,))
        try:
            r, s = self._signer.sign(secret, message)
        except ValueError as e:
            raise SignatureError(f"signing failed: {e}") from e
        return r.to_bytes(32, "big") + _normalize_s(s).to_bytes(32, "big")

    def verify(
        self,
        event_id: bytes | str,
        signature: bytes | str,
        public_key: bytes | str,
    ) -> bool:
        """Return True if *signature* is valid for *event_id* under *public_key*.

        Never raises for a bad signature. A 32-byte key is tried with the
        ``02`` prefix, then ``03``; a 33-byte compressed key is used as is.
        High-S signatures are normalized before checking.

        Raises:
            EncodingError: If the id or key is malformed.
        """
        message = to_bytes(event_id, "event id", (HASH_SIZE,))
        key = to_bytes(public_key, "public key", (XONLY_PUBKEY_SIZE, COMPRESSED_PUBKEY_SIZE))
        try:
            sig = to_bytes(signature, "signature", (SIGNATURE_SIZE,))
        except EncodingError:
            return False

        r = int.from_bytes(sig[:32], "big")
        s = int.from_bytes(sig[32:], "big")
        if not (0 < r < SECP256K1_ORDER and 0 < s < SECP256K1_ORDER):
            return False
        rs = (r, _normalize_s(s))

        if len(key) == COMPRESSED_PUBKEY_SIZE:
            candidates = [key]
        else:
            candidates = [prefix + key for prefix in _PARITY_PREFIXES]

        for candidate in candidates:
            try:
                if self._signer.verify(candidate, message, rs):
                    return True
            except ValueError as e:
                logger.debug("verify_invalid_point prefix=%s error=%s", candidate[:1].hex(), e)
        return False

    def derive_public_key(self, private_key: bytes | str) -> bytes:
        """Return the 33-byte compressed public key for *private_key*.

        Raises:
            EncodingError: If the key is malformed.
            SignatureError: If the key is outside the curve order.
        """
        secret = to_bytes(private_key, "private key", (PRIVATE_KEY_SIZE,))
        try:
            return self._signer.derive_public_key(secret)
        except ValueError as e:
            raise SignatureError(f"public key derivation failed: {e}") from e

    def x_only_public_key(self, private_key: bytes | str) -> str:
        """Return the 64-hex x-only public key used in ``Event.pubkey``."""
        return self.derive_public_key(private_key)[1:].hex()
