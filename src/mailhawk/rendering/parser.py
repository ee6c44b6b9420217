# =============================================================================
# Message Parsing
# =============================================================================
# Turns raw RFC822 bytes into the pieces the gateway works with: decoded
# headers, the text and HTML bodies, and the attachments.
#
# Header helpers here are shared with the listing pipeline, which parses only
# the FROM/TO/SUBJECT/DATE header block of each message. Both paths are
# lenient: a malformed address or date degrades to a sensible default
# instead of failing the whole message.
# =============================================================================

import email
import email.errors
import email.header
import email.utils
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email import policy
from email.message import Message as EmailMessage

from mailhawk.core import Address, Attachment, ParseFailure
from mailhawk.rendering.sanitize import text_to_html
from mailhawk.rendering.text import html_to_text

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# "Display Name <user@example.com>"
_NAMED_ADDRESS = re.compile(r"(.*?)\s*<(.*)>")
# Commas that are not inside a quoted display name
_ADDRESS_SEPARATOR = re.compile(r',(?=(?:[^"]*"[^"]*")*[^"]*$)')


# =============================================================================
# Header helpers
# =============================================================================

def decode_header_value(value: str | None) -> str:
    """Decode an RFC 2047 encoded header value."""
    if not value:
        return ""
    try:
        decoded_parts = email.header.decode_header(str(value))
        result = ""
        for part, charset in decoded_parts:
            if isinstance(part, bytes):
                try:
                    result += part.decode(charset or "utf-8", errors="replace")
                except LookupError:
                    result += part.decode("utf-8", errors="replace")
            else:
                result += part
        return result
    except (ValueError, email.errors.HeaderParseError):
        return str(value)


def parse_address(value: str | None) -> Address:
    """
    Parse one address.

    "Name <addr>" gives both parts (quotes stripped from the name); anything
    else is taken as a bare address.
    """
    value = decode_header_value(value).strip()
    if not value:
        return Address()

    match = _NAMED_ADDRESS.match(value)
    if match:
        name = match.group(1).strip().strip('"').strip()
        return Address(address=match.group(2).strip(), name=name)
    return Address(address=value.strip('"').strip())


def parse_address_list(value: str | None) -> list[Address]:
    """Parse a comma-separated address header (commas in quotes are kept)."""
    if not value:
        return []
    value = decode_header_value(value)
    addresses = []
    for chunk in _ADDRESS_SEPARATOR.split(value):
        if chunk.strip():
            addresses.append(parse_address(chunk))
    return addresses


def parse_date(value: str | None) -> datetime | None:
    """
    Parse a Date header and normalize it to UTC.

    Returns None when the header is missing or unparseable.
    """
    if not value:
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(str(value))
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        # Assume UTC if no timezone
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_header_block(raw: bytes | None) -> EmailMessage:
    """Parse a header-only block (e.g., BODY[HEADER.FIELDS (...)])."""
    return email.message_from_bytes(raw or b"", policy=policy.compat32)


# =============================================================================
# Full message parsing
# =============================================================================

@dataclass
class ParseOptions:
    """
    Options for parsing a full message.

    Attributes:
        max_html_length: HTML bodies are cut at this many characters.
        skip_html_to_text: Do not derive a text body from HTML.
        skip_text_to_html: Do not derive an HTML body from text.
        skip_text_links: Do not turn URLs in text into anchors.
    """
    max_html_length: int = 20 * MB
    skip_html_to_text: bool = False
    skip_text_to_html: bool = False
    skip_text_links: bool = False

    @classmethod
    def for_size(cls, size: int | None) -> "ParseOptions":
        """
        Options adapted to the message size.

        Above 5 MB the HTML/text cross-conversion is skipped, above 1 MB
        link detection is skipped.
        """
        size = size or 0
        large = size > 5 * MB
        return cls(
            skip_html_to_text=large,
            skip_text_to_html=large,
            skip_text_links=size > 1 * MB,
        )


@dataclass
class ParsedMessage:
    """
    A parsed RFC822 message.

    Attributes:
        subject: Decoded subject.
        sender: The From address.
        to / cc: Recipient addresses.
        date: Date header in UTC, None if missing or invalid.
        message_id: The Message-ID header.
        text: Plain text body (possibly derived from HTML).
        html: HTML body as sent, unsanitized.
        text_as_html: The text body rendered as escaped <pre> HTML.
        attachments: Attachments with their payloads.
    """
    subject: str = ""
    sender: Address = field(default_factory=Address)
    to: list[Address] = field(default_factory=list)
    cc: list[Address] = field(default_factory=list)
    date: datetime | None = None
    message_id: str = ""
    text: str = ""
    html: str = ""
    text_as_html: str = ""
    attachments: list[Attachment] = field(default_factory=list)


def _decode_part(part: EmailMessage) -> str:
    """Decode a message part to string."""
    payload = part.get_payload(decode=True)
    if isinstance(payload, bytes):
        # Try to detect charset
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset, errors="replace")
        except (LookupError, UnicodeDecodeError):
            return payload.decode("utf-8", errors="replace")
    return str(payload) if payload else ""


def _extract_attachment(part: EmailMessage) -> Attachment | None:
    """Extract attachment from message part."""
    content_type = part.get_content_type()
    filename = part.get_filename()
    if not filename:
        # Generate filename from content type
        if content_type == "message/rfc822":
            filename = "message.eml"
        else:
            ext = content_type.split("/")[-1] if "/" in content_type else "bin"
            filename = f"attachment.{ext}"

    # Decode filename if encoded
    filename = decode_header_value(filename)

    if content_type == "message/rfc822":
        inner = part.get_payload()
        if isinstance(inner, list) and inner:
            payload = inner[0].as_bytes()
        else:
            payload = part.get_payload(decode=True)
    else:
        payload = part.get_payload(decode=True)
    if not isinstance(payload, bytes):
        return None

    disposition = (part.get_content_disposition() or "").lower()
    content_id = (part.get("Content-ID") or "").strip().strip("<>") or None

    return Attachment(
        filename=filename,
        content_type=content_type,
        size=len(payload),
        content_id=content_id,
        is_inline=disposition == "inline",
        data=payload,
    )


def _leaf_parts(msg: EmailMessage):
    """
    Yield the non-container parts of a message in document order.

    Attached messages (message/rfc822) are leaves: they are attachments of
    this message, not part of its body.
    """
    stack = [msg]
    while stack:
        part = stack.pop()
        if part.is_multipart() and part.get_content_type() != "message/rfc822":
            stack.extend(reversed(part.get_payload()))
        else:
            yield part


def parse_message(raw: bytes, options: ParseOptions | None = None) -> ParsedMessage:
    """
    Parse raw RFC822 bytes.

    Args:
        raw: The complete message as fetched with BODY[].
        options: Size-dependent parsing options.

    Returns:
        The parsed message.

    Raises:
        ParseFailure: If the input is empty or cannot be parsed.
    """
    options = options or ParseOptions()
    if not raw or not raw.strip():
        raise ParseFailure("Message source is empty")

    try:
        msg = email.message_from_bytes(raw, policy=policy.compat32)
        parsed = ParsedMessage(
            subject=decode_header_value(msg.get("Subject")),
            sender=parse_address(msg.get("From")),
            to=parse_address_list(msg.get("To")),
            cc=parse_address_list(msg.get("Cc")),
            date=parse_date(msg.get("Date")),
            message_id=(msg.get("Message-ID") or "").strip(),
        )

        for part in _leaf_parts(msg):
            content_type = part.get_content_type()
            disposition = (part.get_content_disposition() or "").lower()

            # Check if it's an attachment
            if disposition == "attachment" or content_type == "message/rfc822":
                attachment = _extract_attachment(part)
                if attachment:
                    parsed.attachments.append(attachment)
            elif content_type == "text/plain" and not parsed.text and not part.get_filename():
                parsed.text = _decode_part(part)
            elif content_type == "text/html" and not parsed.html and not part.get_filename():
                parsed.html = _decode_part(part)
            elif not content_type.startswith("text/") or part.get_filename():
                # Inline images and other named parts
                attachment = _extract_attachment(part)
                if attachment:
                    parsed.attachments.append(attachment)

    except ParseFailure:
        raise
    except Exception as e:
        raise ParseFailure(f"Could not parse message: {e}") from e

    if len(parsed.html) > options.max_html_length:
        logger.warning(f"HTML body truncated to {options.max_html_length} characters")
        parsed.html = parsed.html[:options.max_html_length]

    if not parsed.text and parsed.html and not options.skip_html_to_text:
        parsed.text = html_to_text(parsed.html)
    if parsed.text and not options.skip_text_to_html:
        parsed.text_as_html = text_to_html(parsed.text, links=not options.skip_text_links)

    return parsed
