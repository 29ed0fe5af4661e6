"""
URL pair and upstream request helpers for the proxy.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}

# Hop-by-hop headers are never forwarded in either direction.
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}

UPSTREAM_ACCEPT_ENCODING = "gzip, deflate"


class InvalidUrlError(ValueError):
    """Raised when the configured origin or public URL is not an absolute URL."""


def _parse_absolute_url(url: str, label: str) -> tuple[str, str, str, str]:
    """Return (scheme, hostname, port, path); port is "" for the scheme default."""
    if not url or not isinstance(url, str):
        raise InvalidUrlError(f"{label} URL is not configured")

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as e:
        raise InvalidUrlError(f"{label} URL {url!r} is invalid: {e}") from e

    if not parts.scheme or not parts.hostname:
        raise InvalidUrlError(f"{label} URL {url!r} must be absolute (scheme://host)")

    scheme = parts.scheme.lower()
    if port is None or DEFAULT_PORTS.get(scheme) == port:
        port_str = ""
    else:
        port_str = str(port)

    hostname = parts.hostname
    if ":" in hostname:
        # IPv6 literal; urlsplit drops the brackets a URL host keeps.
        hostname = f"[{hostname}]"

    return scheme, hostname, port_str, parts.path or "/"


@dataclass(frozen=True)
class UrlPair:
    """Origin/public URL pair, built once per request from configuration."""

    origin_url: str
    public_url: str
    origin_scheme: str
    origin_hostname: str
    origin_port: str
    origin_path: str
    public_scheme: str
    public_hostname: str
    public_port: str
    public_path: str

    @classmethod
    def from_config(cls, origin_url: str, public_url: str) -> "UrlPair":
        o_scheme, o_host, o_port, o_path = _parse_absolute_url(origin_url, "Origin")
        p_scheme, p_host, p_port, p_path = _parse_absolute_url(public_url, "Public")
        return cls(
            origin_url=origin_url,
            public_url=public_url,
            origin_scheme=o_scheme,
            origin_hostname=o_host,
            origin_port=o_port,
            origin_path=o_path,
            public_scheme=p_scheme,
            public_hostname=p_host,
            public_port=p_port,
            public_path=p_path,
        )

    @property
    def origin_origin(self) -> str:
        return _origin(self.origin_scheme, self.origin_hostname, self.origin_port)

    @property
    def public_origin(self) -> str:
        return _origin(self.public_scheme, self.public_hostname, self.public_port)


def _origin(scheme: str, hostname: str, port: str) -> str:
    if port:
        return f"{scheme}://{hostname}:{port}"
    return f"{scheme}://{hostname}"


def build_upstream_url(request_url: str, pair: UrlPair) -> str:
    """
    Map the inbound URL onto the origin by replacing the public URL prefix.

    The replacement is textual; when the public prefix does not occur the URL
    is returned unchanged.
    """
    return request_url.replace(pair.public_url, pair.origin_url)


def build_upstream_headers(inbound_headers, pair: UrlPair, client_ip_header: str) -> dict[str, str]:
    """Copy inbound headers and set the forwarding headers the origin expects."""
    headers: dict[str, str] = {}

    for name, value in inbound_headers:
        name_lower = name.lower()
        if name_lower == "host" or name_lower in HOP_BY_HOP_HEADERS:
            continue
        headers[name] = value

    client_ip = ""
    for name, value in inbound_headers:
        if name.lower() == client_ip_header.lower():
            client_ip = value
            break

    # Drop any case variant before setting canonical names.
    for key in [k for k in headers if k.lower() in ("x-forwarded-host", "x-forwarded-proto", "x-forwarded-for", "accept-encoding")]:
        del headers[key]

    headers["Host"] = pair.origin_hostname
    headers["X-Forwarded-Host"] = pair.public_hostname
    headers["X-Forwarded-Proto"] = pair.public_scheme
    headers["X-Forwarded-For"] = client_ip
    headers["Accept-Encoding"] = UPSTREAM_ACCEPT_ENCODING

    return headers
