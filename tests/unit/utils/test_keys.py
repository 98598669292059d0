"""
Unit tests for utils.keys module.

Tests:
- generate_private_key() format
- derive_x_only_public_key() and its error cases
- load_private_key_from_env() and KeysConfig environment loading
"""

import re

import pytest

from nostrlink.core.exceptions import ConfigurationError
from nostrlink.utils.keys import (
    ENV_PRIVATE_KEY,
    KeysConfig,
    derive_x_only_public_key,
    generate_private_key,
    load_private_key_from_env,
)


KEY_ONE = "00" * 31 + "01"
GENERATOR_X = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"


# =============================================================================
# Key Helper Tests
# =============================================================================


class TestGeneratePrivateKey:
    def test_format(self) -> None:
        assert re.fullmatch(r"[0-9a-f]{64}", generate_private_key())

    def test_random(self) -> None:
        assert generate_private_key() != generate_private_key()

    def test_derivable(self) -> None:
        assert len(derive_x_only_public_key(generate_private_key())) == 64


class TestDeriveXOnlyPublicKey:
    def test_generator(self) -> None:
        assert derive_x_only_public_key(KEY_ONE) == GENERATOR_X

    def test_wrong_length(self) -> None:
        with pytest.raises(ConfigurationError, match="64 hex characters"):
            derive_x_only_public_key("abcd")

    def test_non_hex(self) -> None:
        with pytest.raises(ConfigurationError, match="invalid"):
            derive_x_only_public_key("zz" * 32)

    def test_zero_key(self) -> None:
        with pytest.raises(ConfigurationError, match="invalid"):
            derive_x_only_public_key("00" * 32)


# =============================================================================
# Environment Loading Tests
# =============================================================================


class TestLoadPrivateKeyFromEnv:
    def test_loads_and_lowercases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_NOSTR_KEY", f"  {KEY_ONE.upper()}  ")
        assert load_private_key_from_env("TEST_NOSTR_KEY").get_secret_value() == KEY_ONE

    def test_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TEST_NOSTR_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="TEST_NOSTR_KEY environment variable"):
            load_private_key_from_env("TEST_NOSTR_KEY")

    def test_malformed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_NOSTR_KEY", "nope")
        with pytest.raises(ConfigurationError):
            load_private_key_from_env("TEST_NOSTR_KEY")


class TestKeysConfig:
    def test_default_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_PRIVATE_KEY, KEY_ONE)
        config = KeysConfig()
        assert config.keys_env == ENV_PRIVATE_KEY
        assert config.private_key.get_secret_value() == KEY_ONE
        assert config.public_key == GENERATOR_X

    def test_custom_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_RELAY_KEY", KEY_ONE)
        assert KeysConfig(keys_env="MY_RELAY_KEY").public_key == GENERATOR_X

    def test_secret_hidden_in_repr(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_PRIVATE_KEY, KEY_ONE)
        assert KEY_ONE not in repr(KeysConfig())

    def test_missing_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(ENV_PRIVATE_KEY, raising=False)
        with pytest.raises(ConfigurationError):
            KeysConfig()
