# =============================================================================
# HTML Sanitization
# =============================================================================
# Makes message HTML safe to hand to a browser-based viewer.
#
# Two things are removed:
#   - <script> elements, including their content
#   - inline event handler attributes (onclick=, onload=, ...)
#
# Everything else passes through unchanged; the client renders the body in
# a sandboxed frame. Plain text bodies are escaped and wrapped in <pre>.
# =============================================================================

import html
import re

_SCRIPT_BLOCK = re.compile(r"<script\b.*?</script\s*>", re.IGNORECASE | re.DOTALL)
# A <script> that is never closed swallows the rest of the document
_SCRIPT_OPEN = re.compile(r"<script\b.*", re.IGNORECASE | re.DOTALL)
# A tag, quoted attribute values may contain ">"
_TAG = re.compile(r"""<(?:"[^"]*"|'[^']*'|[^'">])*>?""")
# Handlers may follow whitespace, "/" or the closing quote of a previous value
_EVENT_HANDLER = re.compile(
    r"""(\s+|[/"'])on\w+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""",
    re.IGNORECASE,
)
_URL = re.compile(r"""\b(?:https?://|www\.)[^\s<>"']+""", re.IGNORECASE)

PLACEHOLDER_BODY = "<p><em>This message has no content.</em></p>"


def _strip_handlers(match: re.Match) -> str:
    def _keep_separator(handler: re.Match) -> str:
        separator = handler.group(1)
        return "" if separator.isspace() else separator
    return _EVENT_HANDLER.sub(_keep_separator, match.group(0))


def sanitize_html(content: str) -> str:
    """
    Strip scripts and event handler attributes from HTML.

    Removal repeats until the output is stable, so nested constructs such
    as "<scr<script></script>ipt>" cannot reassemble into a script.

    Example:
        >>> sanitize_html('<p onclick="x()">Hi</p><script>evil()</script>')
        '<p>Hi</p>'
    """
    if not content:
        return ""

    previous = None
    while previous != content:
        previous = content
        content = _SCRIPT_BLOCK.sub("", content)
        content = _SCRIPT_OPEN.sub("", content)
        content = _TAG.sub(_strip_handlers, content)
    return content


def escape_text(text: str) -> str:
    """Escape &, < and > for embedding text in HTML."""
    return html.escape(text, quote=False)


def linkify(escaped: str) -> str:
    """Wrap bare URLs in already escaped text with anchors."""
    def _anchor(match: re.Match) -> str:
        url = match.group(0)
        href = url if "://" in url else f"http://{url}"
        return f'<a href="{href}" target="_blank" rel="noopener noreferrer">{url}</a>'
    return _URL.sub(_anchor, escaped)


def text_to_html(text: str, *, links: bool = True) -> str:
    """
    Render plain text as HTML: escaped and wrapped in <pre>.

    Args:
        text: The plain text body.
        links: Turn bare URLs into anchors.
    """
    escaped = escape_text(text)
    if links:
        escaped = linkify(escaped)
    return f"<pre>{escaped}</pre>"
