"""
Buffering text handler for streamed HTML text nodes.

The tokenizer may split one text node (e.g. the body of a ``<script>``) into
arbitrary fragments, and a URL can straddle a fragment boundary. The
accumulator withholds every fragment until the terminal one arrives and then
emits the rewritten node as a single replacement.
"""

from __future__ import annotations

from typing import Callable


class StreamingTextAccumulator:
    """Text handler owning the buffer of exactly one text node."""

    def __init__(self, rewrite: Callable[[str], str]):
        self.rewrite = rewrite
        self.buffer = ""

    def text(self, chunk) -> None:
        self.buffer += chunk.text

        if chunk.last_in_text_node:
            chunk.replace(self.rewrite(self.buffer), html=True)
            self.buffer = ""
        else:
            chunk.remove()
