"""
Streaming HTML rewriter built on the standard library tokenizer.

``HTMLRewriter`` is fed decoded text chunk by chunk and returns whatever output
is ready. Markup nobody is interested in is passed through verbatim; handlers
registered per tag name can modify start-tag attributes (``element``) and the
text content of the element (``text``).

Text handlers follow a fragment protocol: each piece of text is delivered as a
``TextChunk`` and the handler may ``remove()`` it or ``replace()`` it. When the
text node ends (the next tag boundary or EOF) an empty chunk with
``last_in_text_node=True`` is delivered, so handlers that buffer know when to
flush. A fresh text handler is created for every text node.
"""

from __future__ import annotations

from html import escape
from html.parser import HTMLParser
from typing import Callable, Optional

from .text_accumulator import StreamingTextAccumulator

# (tag, attribute) pairs whose values hold URLs.
HTML_ATTRIBUTE_TARGETS = (
    ("a", "href"),
    ("form", "action"),
    ("img", "src"),
    ("img", "srcset"),
    ("link", "href"),
    ("meta", "content"),
    ("script", "src"),
)

# Elements whose text content is rewritten as a whole.
HTML_TEXT_TARGETS = ("script", "style")


def _escape_attribute(value: str) -> str:
    # Non-ASCII characters become character references, which read the same in
    # any charset; lone surrogates carry undecodable source bytes and are left
    # for the encoder to restore.
    out = []
    for ch in escape(value, quote=True):
        code = ord(ch)
        if code < 0x80 or 0xDC80 <= code <= 0xDCFF:
            out.append(ch)
        else:
            out.append(f"&#{code};")
    return "".join(out)


class Element:
    """Start tag view handed to element handlers."""

    def __init__(self, tag: str, attrs: list[tuple[str, Optional[str]]]):
        self.tag = tag
        self.attrs = list(attrs)
        self.modified = False

    def get_attribute(self, name: str) -> Optional[str]:
        for attr_name, value in self.attrs:
            if attr_name == name:
                return value
        return None

    def set_attribute(self, name: str, value: str) -> None:
        for i, (attr_name, current) in enumerate(self.attrs):
            if attr_name == name:
                if current == value:
                    # Unchanged values keep the original markup.
                    return
                self.attrs[i] = (attr_name, value)
                break
        else:
            self.attrs.append((name, value))
        self.modified = True

    def serialize(self, self_closing: bool = False) -> str:
        parts = [self.tag]
        for name, value in self.attrs:
            if value is None:
                parts.append(name)
            else:
                parts.append(f'{name}="{_escape_attribute(value)}"')
        return "<" + " ".join(parts) + (" />" if self_closing else ">")


class TextChunk:
    """One fragment of a text node."""

    def __init__(self, text: str, last_in_text_node: bool):
        self.text = text
        self.last_in_text_node = last_in_text_node
        self.removed = False
        self._replacement: Optional[str] = None

    def remove(self) -> None:
        self.removed = True
        self._replacement = None

    def replace(self, content: str, html: bool = False) -> None:
        """Substitute this fragment; ``html=True`` emits ``content`` unescaped."""
        self.removed = False
        self._replacement = content if html else escape(content, quote=False)

    def output(self) -> str:
        if self.removed:
            return ""
        if self._replacement is not None:
            return self._replacement
        return self.text


class AttributeRewriter:
    """Element handler rewriting one attribute through ``rewrite`` when present."""

    def __init__(self, attribute_name: str, rewrite: Callable[[str], str]):
        self.attribute_name = attribute_name
        self.rewrite = rewrite

    def element(self, element: Element) -> None:
        attribute_value = element.get_attribute(self.attribute_name)

        if attribute_value:
            element.set_attribute(self.attribute_name, self.rewrite(attribute_value))


class HTMLRewriter(HTMLParser):
    def __init__(self):
        self._element_handlers: dict[str, list] = {}
        self._text_factories: dict[str, list[Callable[[], object]]] = {}
        self._output: list[str] = []
        self._text_scope: list[str] = []
        self._text_handlers: Optional[list] = None
        self._raw_sink: Optional[Callable[[str], None]] = None
        super().__init__(convert_charrefs=False)

    def on_element(self, tag: str, handler) -> "HTMLRewriter":
        self._element_handlers.setdefault(tag, []).append(handler)
        return self

    def on_text(self, tag: str, factory: Callable[[], object]) -> "HTMLRewriter":
        self._text_factories.setdefault(tag, []).append(factory)
        return self

    def feed(self, data: str) -> str:
        super().feed(data)
        return self._drain()

    def close(self) -> str:
        super().close()
        self._end_text_node()
        return self._drain()

    def _drain(self) -> str:
        out = "".join(self._output)
        self._output.clear()
        return out

    # Text

    def _text(self, data: str) -> None:
        if not data:
            return
        if not self._text_scope:
            self._output.append(data)
            return
        if self._text_handlers is None:
            tag = self._text_scope[-1]
            self._text_handlers = [factory() for factory in self._text_factories[tag]]
        self._deliver(TextChunk(data, last_in_text_node=False))

    def _deliver(self, chunk: TextChunk) -> None:
        for handler in self._text_handlers:
            handler.text(chunk)
        self._output.append(chunk.output())

    def _end_text_node(self) -> None:
        if self._text_handlers is None:
            return
        self._deliver(TextChunk("", last_in_text_node=True))
        self._text_handlers = None

    def handle_data(self, data):
        self._text(data)

    def handle_entityref(self, name):
        self._raw_sink = self._text

    def handle_charref(self, name):
        self._raw_sink = self._text

    # Markup

    def _render_starttag(self, tag: str, attrs, self_closing: bool) -> str:
        raw = self.get_starttag_text()
        handlers = self._element_handlers.get(tag)
        if not handlers:
            return raw

        element = Element(tag, attrs)
        for handler in handlers:
            handler.element(element)

        if not element.modified:
            return raw
        return element.serialize(self_closing)

    def handle_starttag(self, tag, attrs):
        self._end_text_node()
        self._output.append(self._render_starttag(tag, attrs, self_closing=False))
        if tag in self._text_factories:
            self._text_scope.append(tag)

    def handle_startendtag(self, tag, attrs):
        self._end_text_node()
        self._output.append(self._render_starttag(tag, attrs, self_closing=True))

    def handle_endtag(self, tag):
        self._end_text_node()
        if tag in self._text_scope:
            # Close the innermost matching element and anything left open inside it.
            idx = len(self._text_scope) - 1 - self._text_scope[::-1].index(tag)
            del self._text_scope[idx:]
        self._raw_sink = self._output.append

    def _copy_markup(self) -> None:
        self._end_text_node()
        self._raw_sink = self._output.append

    def handle_comment(self, data):
        self._copy_markup()

    def handle_decl(self, decl):
        self._copy_markup()

    def handle_pi(self, data):
        self._copy_markup()

    def unknown_decl(self, data):
        self._copy_markup()

    # Source text

    def updatepos(self, i, j):
        # The parser reports the span [i, j) of every construct right after its
        # handler ran; references, end tags, comments and declarations are
        # copied from there instead of being rebuilt from the parsed values.
        sink, self._raw_sink = self._raw_sink, None
        if sink is not None:
            sink(self.rawdata[i:j])
        return super().updatepos(i, j)


def build_html_rewriter(rewrite: Callable[[str], str]) -> HTMLRewriter:
    """Wire the URL attribute and text targets to ``rewrite``."""
    rewriter = HTMLRewriter()

    for tag, attribute in HTML_ATTRIBUTE_TARGETS:
        rewriter.on_element(tag, AttributeRewriter(attribute, rewrite))

    for tag in HTML_TEXT_TARGETS:
        rewriter.on_text(tag, lambda: StreamingTextAccumulator(rewrite))

    return rewriter
