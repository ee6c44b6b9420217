# =============================================================================
# Rendering Tests
# =============================================================================
# Parsing, sanitization and HTML-to-text conversion.
# =============================================================================

from datetime import datetime, timezone

import pytest

from mailhawk.core import Address, ParseFailure
from mailhawk.rendering import (
    PLACEHOLDER_BODY,
    ParseOptions,
    html_to_text,
    parse_address,
    parse_address_list,
    parse_date,
    parse_message,
    sanitize_html,
    text_to_html,
)
from mailhawk.rendering.parser import MB, ParsedMessage
from mailhawk.imap.retrieval import render_body

from fakes import build_raw


class TestSanitize:
    def test_strips_scripts_and_handlers(self, sample_html_email):
        clean = sanitize_html(sample_html_email)

        assert "<script" not in clean.lower()
        assert "evil.example.com" not in clean
        assert "onload" not in clean
        assert "onclick" not in clean
        assert '<a href="https://example.com">Click here</a>' in clean

    def test_nested_script_cannot_reassemble(self):
        clean = sanitize_html("<scr<script>x</script>ipt>alert(1)</script>")
        assert "<script" not in clean.lower()

    def test_unclosed_script_is_dropped(self):
        assert sanitize_html("<p>ok</p><SCRIPT>alert(1)") == "<p>ok</p>"

    @pytest.mark.parametrize("attribute", [
        'onclick="a()"', "onmouseover='b()'", "ONLOAD=c()",
    ])
    def test_handler_quoting_styles(self, attribute):
        assert sanitize_html(f"<div {attribute}>x</div>") == "<div>x</div>"

    @pytest.mark.parametrize("markup, expected", [
        ('<svg/onload="alert(1)">', "<svg/>"),
        ('<img src="x"onerror="alert(1)">', '<img src="x">'),
        ("<img src='x'onerror='alert(1)'>", "<img src='x'>"),
        ('<img alt=">" onerror="alert(1)">', '<img alt=">">'),
    ])
    def test_handlers_without_leading_space(self, markup, expected):
        assert sanitize_html(markup) == expected

    def test_text_outside_tags_is_kept(self):
        assert sanitize_html("<p>go online=now</p>") == "<p>go online=now</p>"


class TestTextToHtml:
    def test_escapes_and_wraps(self):
        assert text_to_html("a < b & c > d", links=False) == "<pre>a &lt; b &amp; c &gt; d</pre>"

    def test_links(self):
        html = text_to_html("see https://example.com/x?a=1 now")
        assert '<a href="https://example.com/x?a=1"' in html

    def test_links_can_be_skipped(self):
        assert "<a " not in text_to_html("see https://example.com", links=False)


class TestHeaders:
    def test_named_address(self):
        assert parse_address('"Doe, Jane" <jane@example.com>') == Address("jane@example.com", "Doe, Jane")

    def test_bare_address(self):
        assert parse_address("jane@example.com") == Address("jane@example.com")

    def test_encoded_name(self):
        assert parse_address("=?utf-8?q?J=C3=BCrgen?= <j@example.com>").name == "Jürgen"

    def test_address_list_keeps_quoted_commas(self):
        addresses = parse_address_list('"Doe, Jane" <jane@example.com>, bob@example.com')
        assert [a.address for a in addresses] == ["jane@example.com", "bob@example.com"]

    def test_date_is_normalized_to_utc(self):
        assert parse_date("Mon, 15 Jan 2024 12:30:00 +0200") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_bad_dates(self, value):
        assert parse_date(value) is None


class TestParseMessage:
    def test_plain_text(self):
        parsed = parse_message(build_raw(subject="Hi", text="Hello https://example.com"))

        assert parsed.subject == "Hi"
        assert parsed.sender == Address("alice@example.com", "Alice")
        assert parsed.text.strip() == "Hello https://example.com"
        assert parsed.html == ""
        assert "<a href" in parsed.text_as_html

    def test_html_only_message_gets_text(self):
        raw = (
            b"From: a@example.com\r\nSubject: H\r\nContent-Type: text/html\r\n\r\n"
            b"<p>Hello <b>world</b></p>"
        )
        parsed = parse_message(raw)

        assert parsed.html.startswith("<p>")
        assert parsed.text == "Hello world"

    def test_attachment_payload_is_kept(self):
        parsed = parse_message(build_raw(attachment=("a.bin", "application/octet-stream", b"\x00\x01")))

        assert len(parsed.attachments) == 1
        assert parsed.attachments[0].filename == "a.bin"
        assert parsed.attachments[0].data == b"\x00\x01"

    def test_empty_source_fails(self):
        with pytest.raises(ParseFailure):
            parse_message(b"  \r\n")

    def test_large_messages_skip_conversion(self):
        options = ParseOptions.for_size(6 * MB)
        assert options.skip_html_to_text and options.skip_text_to_html and options.skip_text_links

        options = ParseOptions.for_size(2 * MB)
        assert not options.skip_text_to_html
        assert options.skip_text_links

        parsed = parse_message(build_raw(text="https://example.com"), ParseOptions.for_size(6 * MB))
        assert parsed.text_as_html == ""


class TestRenderBody:
    def test_prefers_sanitized_html(self):
        parsed = ParsedMessage(html="<p onclick='x()'>Hi</p>", text_as_html="<pre>Hi</pre>")
        assert render_body(parsed) == "<p>Hi</p>"

    def test_falls_back_to_text(self):
        assert render_body(ParsedMessage(text_as_html="<pre>Hi</pre>")) == "<pre>Hi</pre>"
        assert render_body(ParsedMessage(text="a<b")) == "<pre>a&lt;b</pre>"

    def test_placeholder(self):
        assert render_body(ParsedMessage()) == PLACEHOLDER_BODY


def test_html_to_text():
    lines = html_to_text("<ul><li>one</li><li>two</li></ul>").splitlines()
    assert [line.strip() for line in lines] == ["* one", "* two"]
    assert html_to_text("") == ""
