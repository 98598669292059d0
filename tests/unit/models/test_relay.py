"""
Unit tests for models.relay module.

Tests:
- URL normalization (scheme, host case, default port, trailing slash)
- Network detection for clearnet, overlay, and local hosts
- Rejection of malformed URLs
"""

import pytest

from nostrlink.models import NetworkType, Relay


ONION = "a" * 56 + ".onion"


# =============================================================================
# Normalization Tests
# =============================================================================


class TestRelayNormalization:
    """Relay URLs are parsed once and normalized."""

    def test_clearnet_wss(self) -> None:
        relay = Relay("wss://relay.damus.io")
        assert relay.url == "wss://relay.damus.io"
        assert relay.network == NetworkType.CLEARNET
        assert relay.scheme == "wss"
        assert relay.host == "relay.damus.io"
        assert relay.port is None
        assert relay.path is None

    def test_clearnet_ws_upgraded_to_wss(self) -> None:
        assert Relay("ws://relay.damus.io/").url == "wss://relay.damus.io"

    def test_host_lowercased(self) -> None:
        assert Relay("wss://Relay.Example.COM").url == "wss://relay.example.com"

    def test_default_port_dropped(self) -> None:
        relay = Relay("wss://relay.example.com:443")
        assert relay.url == "wss://relay.example.com"
        assert relay.port == 443

    def test_custom_port_and_path_kept(self) -> None:
        relay = Relay("wss://relay.example.com:8443/nostr/")
        assert relay.url == "wss://relay.example.com:8443/nostr"
        assert relay.port == 8443
        assert relay.path == "/nostr"

    def test_duplicate_slashes_collapsed(self) -> None:
        assert Relay("wss://relay.example.com//a//b").url == "wss://relay.example.com/a/b"

    def test_str_is_url(self) -> None:
        assert str(Relay("wss://relay.example.com")) == "wss://relay.example.com"


# =============================================================================
# Network Detection Tests
# =============================================================================


class TestRelayNetworks:
    """Overlay and local relays keep plain ws://."""

    def test_tor(self) -> None:
        relay = Relay(f"wss://{ONION}")
        assert relay.network == NetworkType.TOR
        assert relay.url == f"ws://{ONION}"

    def test_i2p(self) -> None:
        assert Relay("ws://example.i2p").network == NetworkType.I2P

    def test_loki(self) -> None:
        assert Relay("ws://example.loki").network == NetworkType.LOKI

    def test_localhost_keeps_scheme(self) -> None:
        relay = Relay("ws://localhost:7777")
        assert relay.network == NetworkType.LOCAL
        assert relay.url == "ws://localhost:7777"

    def test_private_ip_is_local(self) -> None:
        relay = Relay("ws://192.168.1.10:8080")
        assert relay.network == NetworkType.LOCAL
        assert relay.url == "ws://192.168.1.10:8080"

    @pytest.mark.parametrize(
        ("host", "expected"),
        [
            ("8.8.8.8", NetworkType.CLEARNET),
            ("10.0.0.1", NetworkType.LOCAL),
            ("127.0.0.1", NetworkType.LOCAL),
            ("relay.localhost", NetworkType.LOCAL),
            (ONION, NetworkType.TOR),
            ("nodots", NetworkType.UNKNOWN),
            ("-bad.example.com", NetworkType.UNKNOWN),
            ("", NetworkType.UNKNOWN),
        ],
    )
    def test_detect_network(self, host: str, expected: NetworkType) -> None:
        assert Relay.detect_network(host) == expected


# =============================================================================
# Rejection Tests
# =============================================================================


class TestRelayRejection:
    """Malformed relay URLs raise ValueError."""

    def test_http_scheme(self) -> None:
        with pytest.raises(ValueError, match="Invalid scheme"):
            Relay("https://relay.example.com")

    def test_missing_scheme(self) -> None:
        with pytest.raises(ValueError):
            Relay("relay.example.com")

    def test_query_string(self) -> None:
        with pytest.raises(ValueError, match="query string"):
            Relay("wss://relay.example.com/?a=1")

    def test_fragment(self) -> None:
        with pytest.raises(ValueError, match="fragment"):
            Relay("wss://relay.example.com/#top")

    def test_null_byte(self) -> None:
        with pytest.raises(ValueError, match="null bytes"):
            Relay("wss://relay.example.com/\x00")

    def test_unclassifiable_host(self) -> None:
        with pytest.raises(ValueError, match="Invalid host"):
            Relay("wss://intranet")

    def test_non_str(self) -> None:
        with pytest.raises(TypeError):
            Relay(123)  # type: ignore[arg-type]
