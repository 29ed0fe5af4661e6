"""
Content-Type classification and body pipelines.
"""

from __future__ import annotations

import codecs
import enum
import logging
from typing import Callable, Iterable, Iterator, Optional

from .html_rewriter import build_html_rewriter

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "utf-8"

TEXT_TYPE_PREFIXES = ("text/", "application/x-javascript", "application/javascript")


class ContentClass(enum.Enum):
    HTML = "html"
    TEXT = "text"
    OPAQUE = "opaque"


def classify_content_type(content_type: Optional[str]) -> ContentClass:
    """Pick the body pipeline from the upstream Content-Type header."""
    value = (content_type or "").strip().lower()
    if value.startswith("text/html"):
        return ContentClass.HTML
    if value.startswith(TEXT_TYPE_PREFIXES):
        return ContentClass.TEXT
    return ContentClass.OPAQUE


def _lookup_encoding(encoding: Optional[str]) -> str:
    if not encoding:
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(encoding).name
    except LookupError:
        logger.warning(f"Unknown charset {encoding!r}, falling back to {DEFAULT_ENCODING}")
        return DEFAULT_ENCODING


def stream_html(chunks: Iterable[bytes], encoding: Optional[str], rewrite: Callable[[str], str]) -> Iterator[bytes]:
    """
    Rewrite an HTML body while it streams.

    Output is released as soon as the tokenizer has it, except for the content
    of script/style elements, which is held back until the element ends.

    ``encoding`` is the charset the response declares. Without one the body is
    read as UTF-8 and bytes that do not decode are carried through unchanged,
    so pages that only declare their charset in a ``<meta>`` tag keep their bytes.
    """
    if encoding:
        encoding = _lookup_encoding(encoding)
        decode_errors, encode_errors = "replace", "xmlcharrefreplace"
    else:
        encoding = DEFAULT_ENCODING
        decode_errors = encode_errors = "surrogateescape"
    decoder = codecs.getincrementaldecoder(encoding)(errors=decode_errors)
    rewriter = build_html_rewriter(rewrite)

    for chunk in chunks:
        if not chunk:
            continue
        out = rewriter.feed(decoder.decode(chunk))
        if out:
            yield out.encode(encoding, errors=encode_errors)

    out = rewriter.feed(decoder.decode(b"", final=True)) + rewriter.close()
    if out:
        yield out.encode(encoding, errors=encode_errors)


def rewrite_text_body(body: bytes, encoding: Optional[str], rewrite: Callable[[str], str]) -> bytes:
    """Rewrite a whole CSS/JS/plain-text body at once."""
    encoding = _lookup_encoding(encoding)
    return rewrite(body.decode(encoding, errors="replace")).encode(encoding, errors="replace")
