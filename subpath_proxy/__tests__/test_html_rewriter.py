"""
Tests for the streaming HTML rewriter and the text node accumulator.

Text inside <script>/<style> can reach the rewriter in arbitrary pieces; a URL
split across pieces must still be rewritten, and nothing of the node may be
released before it is complete.
"""
import unittest
import sys
import os

# Add parent directory to path to import app modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from subpath_proxy.features.proxy.services.dispatch import (
    ContentClass,
    classify_content_type,
    rewrite_text_body,
    stream_html,
)
from subpath_proxy.features.proxy.services.html_rewriter import (
    AttributeRewriter,
    Element,
    HTMLRewriter,
    TextChunk,
    build_html_rewriter,
)
from subpath_proxy.features.proxy.services.ruleset import make_url_rewriter
from subpath_proxy.features.proxy.services.text_accumulator import StreamingTextAccumulator
from subpath_proxy.features.proxy.services.urls import UrlPair


def _rewriter():
    return make_url_rewriter(UrlPair.from_config('https://origin.example.com', 'https://public.example.com/blog'))


def _run(html_pieces):
    rewriter = build_html_rewriter(_rewriter())
    outputs = [rewriter.feed(piece) for piece in html_pieces]
    outputs.append(rewriter.close())
    return outputs


class TestStreamingTextAccumulator(unittest.TestCase):
    """Buffering of one text node delivered in fragments."""

    def test_split_hostname_is_rewritten_once_complete(self):
        accumulator = StreamingTextAccumulator(_rewriter())
        chunks = [
            TextChunk("var u = 'https://origin.examp", last_in_text_node=False),
            TextChunk("le.com/x'; var h = 'origin.exa", last_in_text_node=False),
            TextChunk("mple.com';", last_in_text_node=True),
        ]

        for chunk in chunks:
            accumulator.text(chunk)

        self.assertEqual(chunks[0].output(), '')
        self.assertEqual(chunks[1].output(), '')
        self.assertEqual(
            chunks[2].output(),
            "var u = 'https://public.example.com/blog/x'; var h = 'public.example.com:';",
        )
        self.assertEqual(accumulator.buffer, '')

    def test_intermediate_fragments_are_removed(self):
        accumulator = StreamingTextAccumulator(_rewriter())
        chunk = TextChunk('partial', last_in_text_node=False)
        accumulator.text(chunk)
        self.assertTrue(chunk.removed)
        self.assertEqual(accumulator.buffer, 'partial')

    def test_replacement_is_not_escaped(self):
        accumulator = StreamingTextAccumulator(lambda text: text)
        chunk = TextChunk('if (a < b && c) {}', last_in_text_node=True)
        accumulator.text(chunk)
        self.assertEqual(chunk.output(), 'if (a < b && c) {}')

    def test_plain_replace_escapes(self):
        chunk = TextChunk('x', last_in_text_node=True)
        chunk.replace('<b>&</b>')
        self.assertEqual(chunk.output(), '&lt;b&gt;&amp;&lt;/b&gt;')


class TestAttributeRewriter(unittest.TestCase):
    """Attribute adapter behavior on a single element."""

    def test_rewrites_present_attribute(self):
        element = Element('a', [('href', 'https://origin.example.com/x'), ('class', 'nav')])
        AttributeRewriter('href', _rewriter()).element(element)
        self.assertEqual(element.get_attribute('href'), 'https://public.example.com/blog/x')
        self.assertTrue(element.modified)

    def test_absent_or_empty_attribute_is_noop(self):
        for attrs in ([('name', 'top')], [('href', '')], [('href', None)]):
            with self.subTest(attrs=attrs):
                element = Element('a', attrs)
                AttributeRewriter('href', _rewriter()).element(element)
                self.assertFalse(element.modified)
                self.assertEqual(element.attrs, attrs)


class TestHTMLRewriter(unittest.TestCase):
    """End-to-end rewriting of HTML markup."""

    def test_attributes(self):
        html = (
            '<!DOCTYPE html><html><head>'
            '<link rel="stylesheet" href="https://origin.example.com/style.css">'
            '<meta property="og:url" content="https://origin.example.com/">'
            '<script src="https://origin.example.com/app.js"></script>'
            '</head><body>'
            '<a href="https://origin.example.com/about">About</a>'
            '<form action="https://origin.example.com/search"></form>'
            '<img src="https://origin.example.com/a.png" srcset="https://origin.example.com/a.png 1x, https://origin.example.com/b.png 2x">'
            '</body></html>'
        )
        expected = html.replace('https://origin.example.com', 'https://public.example.com/blog')
        self.assertEqual(''.join(_run([html])), expected)

    def test_untouched_markup_is_verbatim(self):
        html = (
            "<!-- header --><div class='x' data-id=3><P>Visit origin.example.com &amp; more &#169;</P>"
            "<a name=top>top</a><a class='nav' href=#top>up</a><br/></DIV>"
        )
        # Text outside script/style is not rewritten.
        self.assertEqual(''.join(_run([html])), html)

    def test_references_without_semicolon_are_verbatim(self):
        html = '<p>Q&A and R&D, &copy 2024, a=1&b=2, &amp; &#169 &#xA9; &nbsp;</p>'
        self.assertEqual(''.join(_run([html])), html)
        self.assertEqual(''.join(_run(list(html))), html)

    def test_declarations_are_verbatim(self):
        html = (
            '<!DOCTYPE html><?xml-stylesheet href="a.css"?>'
            '<!x><svg><![CDATA[x < y]]></svg><!--[if IE]><p>old</p><![endif]--><p>a</p>'
        )
        self.assertEqual(''.join(_run([html])), html)

    def test_self_closing_tag(self):
        html = '<img src="https://origin.example.com/a.png" />'
        self.assertEqual(''.join(_run([html])), '<img src="https://public.example.com/blog/a.png" />')

    def test_attribute_values_are_escaped(self):
        html = '<a href="https://origin.example.com/?a=1&amp;b=2">x</a>'
        self.assertEqual(''.join(_run([html])), '<a href="https://public.example.com/blog/?a=1&amp;b=2">x</a>')

    def test_script_split_across_feeds(self):
        outputs = _run(['<script>var a = "https://origin.exa', 'mple.com/x";</script><p>after</p>'])
        self.assertEqual(outputs[0], '<script>')
        self.assertEqual(
            ''.join(outputs),
            '<script>var a = "https://public.example.com/blog/x";</script><p>after</p>',
        )

    def test_script_split_on_every_character(self):
        html = '<script>var c = {"url":"https:\\/\\/origin.example.com\\/wp-json\\/"};</script>'
        self.assertEqual(
            ''.join(_run(list(html))),
            '<script>var c = {"url":"https:\\/\\/public.example.com\\/blog\\/wp-json\\/"};</script>',
        )

    def test_script_with_markup_inside(self):
        html = '<script>document.write("<a href=\'/wp-content/x\'></a>");</script>'
        self.assertEqual(
            ''.join(_run([html])),
            '<script>document.write("<a href=\'https://public.example.com/blog/wp-content/x\'></a>");</script>',
        )

    def test_style(self):
        html = '<style>body{background:url("/wp-content/bg.png")}</style>'
        self.assertEqual(
            ''.join(_run([html[:20], html[20:]])),
            '<style>body{background:url("https://public.example.com/blog/wp-content/bg.png")}</style>',
        )

    def test_fresh_handler_per_text_node(self):
        created = []

        def factory():
            accumulator = StreamingTextAccumulator(str.upper)
            created.append(accumulator)
            return accumulator

        rewriter = HTMLRewriter().on_text('script', factory)
        out = rewriter.feed('<script>one</script><p>x</p><script>two</script>') + rewriter.close()

        self.assertEqual(out, '<script>ONE</script><p>x</p><script>TWO</script>')
        self.assertEqual(len(created), 2)
        self.assertIsNot(created[0], created[1])


class TestContentDispatch(unittest.TestCase):
    """Content-Type classification and body pipelines."""

    def test_classification(self):
        cases = {
            'text/html': ContentClass.HTML,
            'text/html; charset=UTF-8': ContentClass.HTML,
            'TEXT/HTML': ContentClass.HTML,
            'text/css': ContentClass.TEXT,
            'text/plain; charset=utf-8': ContentClass.TEXT,
            'application/javascript; charset=utf-8': ContentClass.TEXT,
            'application/x-javascript': ContentClass.TEXT,
            'application/json': ContentClass.OPAQUE,
            'image/png': ContentClass.OPAQUE,
            '': ContentClass.OPAQUE,
            None: ContentClass.OPAQUE,
        }
        for content_type, expected in cases.items():
            with self.subTest(content_type=content_type):
                self.assertEqual(classify_content_type(content_type), expected)

    def test_stream_html_handles_split_multibyte_characters(self):
        body = '<p>café</p><a href="https://origin.example.com/">x</a>'.encode('utf-8')
        split = body.index(b'\xa9')
        chunks = [body[:split], body[split:]]

        out = b''.join(stream_html(chunks, 'utf-8', _rewriter()))

        self.assertEqual(out, '<p>café</p><a href="https://public.example.com/blog/">x</a>'.encode('utf-8'))

    def test_stream_html_unknown_charset_falls_back_to_utf8(self):
        body = '<a href="https://origin.example.com/">ü</a>'.encode('utf-8')
        out = b''.join(stream_html([body], 'no-such-charset', _rewriter()))
        self.assertEqual(out, '<a href="https://public.example.com/blog/">ü</a>'.encode('utf-8'))

    def test_changed_attribute_uses_character_references(self):
        body = b'<meta charset="utf-8"><a href="https://origin.example.com/caf&eacute;">x</a>'

        out = b''.join(stream_html([body], 'ISO-8859-1', _rewriter()))

        self.assertEqual(out, b'<meta charset="utf-8"><a href="https://public.example.com/blog/caf&#233;">x</a>')
        out.decode('utf-8')

    def test_stream_html_undeclared_charset_keeps_bytes(self):
        body = (
            '<meta charset="utf-8"><p>café</p>'
            '<a href="https://origin.example.com/caf&eacute;">x</a>'
            '<a href="https://origin.example.com/café">y</a>'
        ).encode('utf-8') + b'<p>\xe9</p>'
        split = body.index(b'\xa9')
        chunks = [body[:split], body[split:]]

        out = b''.join(stream_html(chunks, None, _rewriter()))

        self.assertEqual(
            out,
            (
                '<meta charset="utf-8"><p>café</p>'
                '<a href="https://public.example.com/blog/caf&#233;">x</a>'
                '<a href="https://public.example.com/blog/caf&#233;">y</a>'
            ).encode('utf-8') + b'<p>\xe9</p>',
        )

    def test_rewrite_text_body(self):
        body = b'@import "/wp-content/theme.css"; body{background:url(https://origin.example.com/bg.png)}'
        self.assertEqual(
            rewrite_text_body(body, 'utf-8', _rewriter()),
            b'@import "https://public.example.com/blog/wp-content/theme.css"; '
            b'body{background:url(https://public.example.com/blog/bg.png)}',
        )


if __name__ == '__main__':
    unittest.main()
