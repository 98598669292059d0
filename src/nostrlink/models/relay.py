"""
Validated relay URL with network type detection.

Parses and normalizes WebSocket relay URLs (``ws://`` or ``wss://``) with
RFC 3986 rules, classifies the host into a
[NetworkType][nostrlink.models.constants.NetworkType], and picks the scheme
the client should dial for that network.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import ip_address
from typing import Any, ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from .constants import NetworkType


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable, normalized relay endpoint.

    The scheme is chosen per network:

    * **clearnet** -- ``wss://`` (TLS required on the public internet)
    * **tor / i2p / loki** -- ``ws://`` (encryption handled by the overlay)
    * **local** -- the scheme given by the caller, so that development
      relays on ``ws://localhost:7777`` keep working

    Attributes:
        url: Fully normalized URL including scheme.
        network: Detected [NetworkType][nostrlink.models.constants.NetworkType].
        scheme: URL scheme (``ws`` or ``wss``).
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit port number, or ``None`` when using the default.
        path: URL path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed, uses an unsupported scheme,
            has an unclassifiable host, or contains null bytes.

    Examples:
        ```python
        Relay("relay.damus.io")   # ValueError (scheme is required)
        relay = Relay("ws://relay.damus.io/")
        relay.url       # 'wss://relay.damus.io'
        relay.network   # NetworkType.CLEARNET

        Relay("ws://localhost:7777").url   # 'ws://localhost:7777'
        ```
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    network: NetworkType = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    _DEFAULT_PORTS: ClassVar[dict[str, int]] = {"ws": 80, "wss": 443}

    _OVERLAY_TLDS: ClassVar[dict[str, NetworkType]] = {
        ".onion": NetworkType.TOR,
        ".i2p": NetworkType.I2P,
        ".loki": NetworkType.LOKI,
    }

    def __post_init__(self) -> None:
        if not isinstance(self.raw_url, str):
            raise TypeError(f"raw_url must be a str, got {type(self.raw_url).__name__}")
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        parsed = self._parse(self.raw_url)
        if parsed["network"] == NetworkType.UNKNOWN:
            raise ValueError(f"Invalid host: '{parsed['host']}'")

        for name in ("url", "network", "scheme", "host", "port", "path"):
            object.__setattr__(self, name, parsed[name])

    def __str__(self) -> str:
        return self.url

    @classmethod
    def detect_network(cls, host: str) -> NetworkType:
        """Classify a hostname into a network type.

        Overlay TLDs are checked first, then loopback names and non-global
        IP literals (``LOCAL``), then ordinary DNS names (``CLEARNET``).
        Anything else is ``UNKNOWN``.
        """
        if not host:
            return NetworkType.UNKNOWN

        bare = host.lower().strip("[]")
        for tld, network in cls._OVERLAY_TLDS.items():
            if bare.endswith(tld):
                return network

        if bare == "localhost" or bare.endswith(".localhost"):
            return NetworkType.LOCAL

        try:
            ip = ip_address(bare)
        except ValueError:
            pass
        else:
            return NetworkType.CLEARNET if ip.is_global else NetworkType.LOCAL

        if "." not in bare:
            return NetworkType.UNKNOWN
        labels = bare.split(".")
        if all(label and not label.startswith("-") and not label.endswith("-") for label in labels):
            return NetworkType.CLEARNET
        return NetworkType.UNKNOWN

    @classmethod
    def _parse(cls, raw: str) -> dict[str, Any]:
        uri = uri_reference(raw.strip()).normalize()
        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )
        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        host = uri.host.strip("[]")
        port = int(uri.port) if uri.port else None

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        network = cls.detect_network(host)
        if network == NetworkType.CLEARNET:
            scheme = "wss"
        elif network == NetworkType.LOCAL:
            scheme = uri.scheme
        else:
            scheme = "ws"

        netloc = f"[{host}]" if ":" in host else host
        if port and port != cls._DEFAULT_PORTS[scheme]:
            netloc = f"{netloc}:{port}"

        return {
            "url": f"{scheme}://{netloc}{path or ''}",
            "network": network,
            "scheme": scheme,
            "host": host,
            "port": port,
            "path": path,
        }
