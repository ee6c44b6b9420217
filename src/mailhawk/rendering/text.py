# =============================================================================
# HTML to Plain Text
# =============================================================================
# Converts HTML mail bodies to plain text using inscriptis.
#
# inscriptis copes with the things email HTML is full of:
#   - Complex table layouts
#   - Proper whitespace and line break handling
#   - Lists, headings, and other semantic elements
#
# The gateway needs plain text in two places: as the text part of messages
# that only carry HTML, and for the quoted block of a forwarded message.
# =============================================================================

import re
from dataclasses import dataclass

from inscriptis import get_text
from inscriptis.css_profiles import CSS_PROFILES
from inscriptis.model.config import ParserConfig


@dataclass
class TextRenderOptions:
    """
    Options for HTML to text conversion.

    Attributes:
        display_links: Append link targets after the link text.
        display_images: Show image alt text as [alt].
    """
    display_links: bool = False
    display_images: bool = False


class TextRenderer:
    """
    Renders HTML to plain text using inscriptis.

    Usage:
        >>> renderer = TextRenderer()
        >>> renderer.render("<p>Hello <b>world</b></p>")
        'Hello world'
    """

    def __init__(self, options: TextRenderOptions | None = None) -> None:
        self.options = options or TextRenderOptions()

        # Configure inscriptis
        self._config = ParserConfig(
            css=CSS_PROFILES['strict'],  # Better whitespace handling
            display_links=self.options.display_links,
            display_images=self.options.display_images,
            display_anchors=False,  # Don't show anchor names
        )

    def render(self, html_content: str) -> str:
        """
        Convert HTML to plain text.

        Args:
            html_content: HTML content to convert.

        Returns:
            Plain text with normalized blank lines. Empty input gives "".
        """
        if not html_content or not html_content.strip():
            return ""

        html_content = self._preclean_html(html_content)
        text = get_text(html_content, self._config)
        return self._clean_output(text)

    def _preclean_html(self, html: str) -> str:
        """Pre-clean HTML before parsing to remove problematic content."""
        # Remove IE conditional comments
        html = re.sub(r'<!--\[if[^\]]*\]>.*?<!\[endif\]-->', '', html, flags=re.DOTALL | re.IGNORECASE)
        html = re.sub(r'<!\[if[^\]]*\]>.*?<!\[endif\]>', '', html, flags=re.DOTALL | re.IGNORECASE)

        # Remove style and script blocks
        html = re.sub(r'<style[^>]*>.*?</style>', '', html, flags=re.DOTALL | re.IGNORECASE)
        html = re.sub(r'<script[^>]*>.*?</script>', '', html, flags=re.DOTALL | re.IGNORECASE)

        # Remove XML/Office namespace tags
        html = re.sub(r'<\?xml[^>]*\?>', '', html, flags=re.IGNORECASE)
        html = re.sub(r'<o:[^>]*>.*?</o:[^>]*>', '', html, flags=re.DOTALL)

        return html

    def _clean_output(self, text: str) -> str:
        """Clean up the converted output."""
        # Remove zero-width characters
        text = re.sub(r'[\u200b\u200c\u200d\u2060\ufeff]+', '', text)

        # Normalize multiple blank lines to max 2
        text = re.sub(r'\n{3,}', '\n\n', text)

        # Remove trailing whitespace from lines
        lines = [line.rstrip() for line in text.split('\n')]
        return '\n'.join(lines).strip()


_default_renderer: TextRenderer | None = None


def html_to_text(html_content: str) -> str:
    """Convert HTML to plain text with the default options."""
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = TextRenderer()
    return _default_renderer.render(html_content)
