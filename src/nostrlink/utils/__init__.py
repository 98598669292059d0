"""Signer capability, key loading, and WebSocket transport.

The utils layer sits in the middle of the diamond DAG next to
[nostrlink.nips][nostrlink.nips], depending only on
[nostrlink.models][nostrlink.models] and on the leaf module
[nostrlink.core.exceptions][nostrlink.core.exceptions].

Attributes:
    signer: Raw-bytes secp256k1 signing capability backed by ``coincurve``.
        Consumed by
        [SignatureService][nostrlink.nips.nip01.signature.SignatureService].
    keys: Hex private key loading from environment variables with Pydantic
        validation, plus x-only public key derivation.
    transport: Duplex text channel over an aiohttp WebSocket with TLS
        fallback. Overlay networks (Tor/I2P/Lokinet) require ``proxy_url``.

Note:
    Nothing here imports the connection or pool modules of
    [nostrlink.core][nostrlink.core]; only the exception hierarchy is shared.

Examples:
    ```python
    from nostrlink.utils.keys import KeysConfig
    from nostrlink.utils.transport import open_websocket
    ```
"""
