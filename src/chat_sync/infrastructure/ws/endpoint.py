from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from chat_sync.application.exceptions import TransportError

_SCHEMES = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}


def derive_ws_endpoint(api_url: str, port: int) -> str:
    """Turn the HTTP API base URL into the push channel address.

    ``http://host/coc/gsd/`` with port 8080 becomes ``ws://host:8080``: the
    scheme is rewritten, path and any port are dropped and the fixed push
    port is appended. The port is a deployment convention, not negotiated.
    """
    try:
        parts = urlsplit(api_url.strip())
        host = parts.hostname
    except ValueError as exc:
        raise TransportError(f"Cannot derive push endpoint from {api_url!r}") from exc

    scheme = _SCHEMES.get(parts.scheme.lower())
    if scheme is None or not host:
        raise TransportError(f"Cannot derive push endpoint from {api_url!r}")
    if ":" in host:
        host = f"[{host}]"
    return urlunsplit((scheme, f"{host}:{port}", "", "", ""))
