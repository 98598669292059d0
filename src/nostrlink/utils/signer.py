"""
Elliptic-curve signer capability.

[SignatureService][nostrlink.nips.nip01.signature.SignatureService] never does
curve arithmetic itself: it talks to a [Signer][nostrlink.utils.signer.Signer]
over raw bytes. The default implementation,
[Secp256k1Signer][nostrlink.utils.signer.Secp256k1Signer], is backed by
libsecp256k1 through ``coincurve`` and produces deterministic (RFC 6979)
ECDSA signatures. ``cryptography`` converts between DER and the fixed-width
``(r, s)`` integers.

Attributes:
    SECP256K1_ORDER: Order ``n`` of the secp256k1 group.
    Signer: Structural interface expected by the signature service.
    Secp256k1Signer: coincurve-backed implementation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from coincurve import PrivateKey, PublicKey
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)


SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


@runtime_checkable
class Signer(Protocol):
    """Raw-bytes signing capability with no protocol awareness.

    Signatures are exchanged as ``(r, s)`` integer pairs so that the caller
    owns normalization and wire encoding.
    """

    def sign(self, private_key: bytes, message_hash: bytes) -> tuple[int, int]:
        """Sign a 32-byte hash; raise ``ValueError`` for an invalid key."""
        ...

    def verify(self, public_key: bytes, message_hash: bytes, signature: tuple[int, int]) -> bool:
        """Return True if *signature* is valid; raise ``ValueError`` for an invalid key."""
        ...

    def derive_public_key(self, private_key: bytes) -> bytes:
        """Return the 33-byte compressed public key; raise ``ValueError`` for an invalid key."""
        ...


class Secp256k1Signer:
    """Deterministic ECDSA over secp256k1 backed by libsecp256k1.

    Messages are signed as-is (``hasher=None``): the caller passes the
    32-byte event id, which is already a SHA-256 digest.

    Examples:
        ```python
        signer = Secp256k1Signer()
        pub = signer.derive_public_key(bytes(31) + b"\\x01")
        pub.hex()   # '0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798'
        ```
    """

    def sign(self, private_key: bytes, message_hash: bytes) -> tuple[int, int]:
        der = PrivateKey(private_key).sign(message_hash, hasher=None)
        return decode_dss_signature(der)

    def verify(self, public_key: bytes, message_hash: bytes, signature: tuple[int, int]) -> bool:
        der = encode_dss_signature(*signature)
        return PublicKey(public_key).verify(der, message_hash, hasher=None)

    def derive_public_key(self, private_key: bytes) -> bytes:
        return PrivateKey(private_key).public_key.format(compressed=True)
