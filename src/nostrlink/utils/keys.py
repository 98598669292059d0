"""Nostr key management utilities.

Provides functions and a Pydantic model for loading a hex-encoded private key
from an environment variable and deriving the x-only public key that goes in
``Event.pubkey``. Human-readable key formats (bech32 ``nsec``/``npub``) are
not supported.

Warning:
    Private keys must **never** be stored in configuration files, source code,
    or logged to any output. Always use environment variables or a secure
    secret management system.

Note:
    Key loading happens eagerly at config validation time via
    [KeysConfig][nostrlink.utils.keys.KeysConfig]'s Pydantic model validator,
    so a missing or invalid key is caught at startup rather than at first
    signature.

Examples:
    ```python
    import os

    os.environ["NOSTR_PRIVATE_KEY"] = generate_private_key()
    keys = KeysConfig()
    keys.public_key   # 64 hex characters
    ```
"""

from __future__ import annotations

import os
from typing import Any

from coincurve import PrivateKey
from pydantic import BaseModel, Field, SecretStr, model_validator

from nostrlink.core.exceptions import ConfigurationError

from .signer import Secp256k1Signer


ENV_PRIVATE_KEY = "NOSTR_PRIVATE_KEY"  # pragma: allowlist secret  # Default env var name

_PRIVATE_KEY_HEX_LENGTH = 64


def generate_private_key() -> str:
    """Return a new random private key as 64 lowercase hex characters."""
    return PrivateKey().secret.hex()


def derive_x_only_public_key(private_key_hex: str) -> str:
    """Return the 64-hex x-only public key for a hex private key.

    Raises:
        ConfigurationError: If the key is not 64 hex characters or is
            outside the curve order.
    """
    if len(private_key_hex) != _PRIVATE_KEY_HEX_LENGTH:
        raise ConfigurationError(
            f"private key must be {_PRIVATE_KEY_HEX_LENGTH} hex characters, "
            f"got {len(private_key_hex)}"
        )
    try:
        secret = bytes.fromhex(private_key_hex)
        compressed = Secp256k1Signer().derive_public_key(secret)
    except ValueError as e:
        raise ConfigurationError(f"private key is invalid: {e}") from None
    return compressed[1:].hex()


def load_private_key_from_env(env_var: str) -> SecretStr:
    """Load and check a hex private key from an environment variable.

    Args:
        env_var: Name of the environment variable containing the key.

    Returns:
        The lowercase key wrapped in ``SecretStr`` so that it never shows up
        in ``repr()`` or logs.

    Raises:
        ConfigurationError: If the variable is unset, empty, or malformed.
    """
    value = os.getenv(env_var, "").strip()
    if not value:
        raise ConfigurationError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )
    derive_x_only_public_key(value)
    return SecretStr(value.lower())


class KeysConfig(BaseModel):
    """Pydantic model that auto-loads the private key from an environment variable.

    Attributes:
        keys_env: Environment variable name for the private key.
        private_key: Loaded key as ``SecretStr`` (64 hex characters).

    Raises:
        ConfigurationError: If the environment variable is not set or the
            key is malformed.

    See Also:
        [load_private_key_from_env][nostrlink.utils.keys.load_private_key_from_env]:
            Underlying function used by the model validator.
    """

    keys_env: str = Field(
        default=ENV_PRIVATE_KEY,
        min_length=1,
        description="Environment variable name for private key",
    )
    private_key: SecretStr = Field(description="Private key loaded from keys_env (required)")

    @model_validator(mode="before")
    @classmethod
    def _load_private_key_from_env(cls, data: Any) -> Any:
        """Auto-populate the ``private_key`` field from the environment variable."""
        if isinstance(data, dict) and "private_key" not in data:
            env_var = data.get("keys_env", ENV_PRIVATE_KEY)
            data["private_key"] = load_private_key_from_env(env_var)
        return data

    @property
    def public_key(self) -> str:
        """x-only public key hex derived from the private key."""
        return derive_x_only_public_key(self.private_key.get_secret_value())
