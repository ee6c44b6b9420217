# =============================================================================
# Rendering Module
# =============================================================================
# Everything between raw RFC822 bytes and what a client may display:
#   - parser: headers, bodies and attachments from raw messages
#   - sanitize: script/event-handler stripping and text-to-HTML
#   - text: inscriptis-based HTML to plain text conversion
# =============================================================================

from mailhawk.rendering.parser import (
    ParsedMessage,
    ParseOptions,
    decode_header_value,
    parse_address,
    parse_address_list,
    parse_date,
    parse_message,
)
from mailhawk.rendering.sanitize import PLACEHOLDER_BODY, escape_text, sanitize_html, text_to_html
from mailhawk.rendering.text import TextRenderer, html_to_text

__all__ = [
    "ParsedMessage",
    "ParseOptions",
    "decode_header_value",
    "parse_address",
    "parse_address_list",
    "parse_date",
    "parse_message",
    "PLACEHOLDER_BODY",
    "escape_text",
    "sanitize_html",
    "text_to_html",
    "TextRenderer",
    "html_to_text",
]
