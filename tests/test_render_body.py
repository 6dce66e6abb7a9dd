"""Tests for message body rendering (plain-text bypass vs. sanitized HTML)."""

from unittest.mock import patch

from bs4 import BeautifulSoup

from threadguard.core.models import ContentKind, ThemeMode
from threadguard.render.body import render_body, render_plain
from threadguard.utils.proxy import ImageProxy


class TestPlainText:

    def test_markup_rendered_as_literal_text(self):
        out = render_body("<script>alert(1)</script>", ContentKind.PLAIN)
        assert out == '<pre class="message-body plain">&lt;script&gt;alert(1)&lt;/script&gt;</pre>'
        pre = BeautifulSoup(out, "html.parser").pre
        assert pre.get_text() == "<script>alert(1)</script>"

    def test_plain_text_never_reaches_sanitizer(self):
        with patch("threadguard.render.body.sanitize") as mock_sanitize:
            render_body("<b>bold?</b>", ContentKind.PLAIN, ThemeMode.DARK)
        mock_sanitize.assert_not_called()

    def test_theme_placeholders_not_resolved_in_plain_text(self):
        out = render_plain("{ $LIGHT ? red : blue }")
        assert "{ $LIGHT ? red : blue }" in out

    def test_empty_body(self):
        assert render_plain("") == '<pre class="message-body plain"></pre>'


class TestHtml:

    def test_theme_resolved_before_sanitizing(self):
        raw = '<p style="color: { $LIGHT ? #000 : #fff }">x</p>'
        assert 'style="color: #fff"' in render_body(raw, ContentKind.HTML, ThemeMode.DARK)
        assert 'style="color: #000"' in render_body(raw, ContentKind.HTML, ThemeMode.LIGHT)

    def test_placeholder_cannot_smuggle_script(self):
        raw = "<p>{ $LIGHT ? <script>alert(1)</script> : safe }</p>"
        out = render_body(raw, ContentKind.HTML, ThemeMode.LIGHT)
        assert "script" not in out
        assert "alert" not in out

    def test_image_proxy_applied(self):
        out = render_body(
            '<img src="http://cdn.example/a.gif">',
            ContentKind.HTML,
            image_proxy=ImageProxy("https://proxy.example/img"),
        )
        img = BeautifulSoup(out, "html.parser").img
        assert img["src"].startswith("https://proxy.example/img?url=http%3A%2F%2Fcdn.example")
