"""
Response header policy for proxied responses.
"""

from __future__ import annotations

from typing import Callable, Iterable

from .urls import HOP_BY_HOP_HEADERS

REDIRECT_STATUSES = (301, 302, 303, 307, 308)

# The HTTP client decodes the upstream body and rewriting changes its length.
BODY_FRAMING_HEADERS = {"content-encoding", "content-length"}


def iter_upstream_headers(resp) -> list[tuple[str, str]]:
    """
    Return upstream headers as (name, value) pairs, keeping repeated headers
    such as Set-Cookie apart when the raw urllib3 response is available.
    """
    try:
        return list(resp.raw.headers.items())
    except AttributeError:
        return list(resp.headers.items())


def build_response_headers(
    upstream_headers: Iterable[tuple[str, str]],
    status_code: int,
    rewrite: Callable[[str], str],
) -> list[tuple[str, str]]:
    """
    Apply the header policy:

    - X-Robots-Tag is always removed
    - link (preload hints) is rewritten once, repeated values joined with ", "
    - Location on redirects is rewritten
    - hop-by-hop and body framing headers are dropped
    """
    response_headers: list[tuple[str, str]] = []
    link_values: list[str] = []
    link_name = "link"

    for name, value in upstream_headers:
        name_lower = name.lower()
        if name_lower == "x-robots-tag":
            continue
        if name_lower in HOP_BY_HOP_HEADERS or name_lower in BODY_FRAMING_HEADERS:
            continue
        if name_lower == "link":
            link_name = name
            link_values.append(value)
            continue
        if name_lower == "location" and status_code in REDIRECT_STATUSES:
            value = rewrite(value)
        response_headers.append((name, value))

    if link_values:
        response_headers.append((link_name, rewrite(", ".join(link_values))))

    return response_headers
