"""
URL rewrite ruleset.

Rewrites references to the origin into references to the public location,
across the textual encodings origin pages use:

1. site-relative asset paths (``"/wp-content/...``)
2. backslash-escaped absolute URLs inside JSON / inline scripts
3. plain absolute URLs
4. bare hostnames

Rules are plain substring replacements applied in that order, each on the
output of the previous one. The order is significant: the full-URL rule must
run after the escaped rule, and the hostname rule last, otherwise text that was
already rewritten would be rewritten a second time.

Repeated application is not idempotent (the public URL may itself contain the
origin hostname, e.g. when only the port differs).
"""

from __future__ import annotations

from typing import Callable, Optional

from .urls import UrlPair

Rule = tuple[str, str]
Rewriter = Callable[[Optional[str]], str]

ASSET_PATH = "/wp-content/"
ASSET_DELIMITERS = ("'", '"', "<")


def _escape_slashes(value: str) -> str:
    return value.replace("/", "\\/")


def build_rewrite_rules(pair: UrlPair, omit_empty_port: bool = False) -> list[Rule]:
    """Return the (match, replacement) rules for ``pair`` in priority order."""
    public_prefix = pair.public_url.rstrip("/")

    rules: list[Rule] = [
        (f"{delimiter}{ASSET_PATH}", f"{delimiter}{public_prefix}{ASSET_PATH}")
        for delimiter in ASSET_DELIMITERS
    ]

    rules.append(
        (
            _escape_slashes(pair.origin_origin),
            _escape_slashes(pair.public_origin) + _escape_slashes(pair.public_path.rstrip("/")),
        )
    )

    rules.append((pair.origin_url, pair.public_url))

    if omit_empty_port and not pair.public_port:
        public_host = pair.public_hostname
    else:
        public_host = f"{pair.public_hostname}:{pair.public_port}"
    rules.append((pair.origin_hostname, public_host))

    return rules


def apply_rules(text: Optional[str], rules: list[Rule]) -> str:
    if text is None:
        return ""
    for match, replacement in rules:
        if match:
            text = text.replace(match, replacement)
    return text


def make_url_rewriter(pair: UrlPair, omit_empty_port: bool = False) -> Rewriter:
    """Build the text -> text transformer for ``pair``. ``None`` maps to ``""``."""
    rules = build_rewrite_rules(pair, omit_empty_port=omit_empty_port)

    def rewrite(text: Optional[str]) -> str:
        return apply_rules(text, rules)

    return rewrite
