# =============================================================================
# FETCH Response Decoding
# =============================================================================
# Turns the raw response lines aioimaplib hands back into structured data.
#
# aioimaplib returns a FETCH response as a flat list that mixes text lines
# and literal payloads:
#
#     b'1 FETCH (UID 42 FLAGS (\\Seen) BODY[HEADER.FIELDS (FROM)] {27}'
#     bytearray(b'From: Alice <a@example.com>\r\n\r\n')
#     b' BODYSTRUCTURE ("text" "plain" ("charset" "utf-8") NIL NIL "7bit" 12 1))'
#     b'2 FETCH (UID 43 ...'
#     b'FETCH completed.'
#
# A text line ending in {N} announces that the next item is a literal of N
# bytes. We group the items per message, tokenize each group into nested
# lists (atoms, quoted strings, literals, NIL), then read the attribute pairs.
# =============================================================================

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from mailhawk.core.structure import Disposition, MimeNode

logger = logging.getLogger(__name__)

_FETCH_START = re.compile(rb"^\*?\s*(\d+)\s+FETCH\s*(?=\()", re.IGNORECASE)
_LITERAL_MARKER = re.compile(rb"\{(\d+)\}\s*$")


class _Literal:
    """A literal payload spliced into the token stream."""
    __slots__ = ("data",)

    def __init__(self, data: bytes) -> None:
        self.data = data


@dataclass
class FetchedMessage:
    """
    Attributes of one message from a FETCH response.

    Attributes:
        seq: Sequence number the server reported.
        uid: UID attribute, if requested and present.
        flags: Raw flag atoms (e.g., ["\\Seen"]).
        size: RFC822.SIZE attribute.
        structure: Decoded BODYSTRUCTURE.
        sections: Body sections keyed by their normalized name, e.g.
                  "BODY[]" or "BODY[HEADER.FIELDS (FROM TO SUBJECT DATE)]".
    """
    seq: int
    uid: int | None = None
    flags: list[str] = field(default_factory=list)
    size: int | None = None
    structure: MimeNode | None = None
    sections: dict[str, bytes] = field(default_factory=dict)

    @property
    def body(self) -> bytes | None:
        """The full RFC822 message, if BODY[] was fetched."""
        return self.sections.get("BODY[]")

    @property
    def header(self) -> bytes | None:
        """The first header section (BODY[HEADER...]) that was fetched."""
        for key, value in self.sections.items():
            if key.startswith("BODY[HEADER"):
                return value
        return None


# =============================================================================
# Tokenizer
# =============================================================================

def _as_bytes(item: Any) -> bytes:
    if isinstance(item, (bytes, bytearray)):
        return bytes(item)
    return str(item).encode("utf-8")


def tokenize(segments: Iterable[bytes | _Literal], *, single: bool = False) -> list:
    """
    Tokenize IMAP response text into nested Python lists.

    Atoms become str, quoted strings become str, NIL becomes None, literals
    become bytes and parenthesized lists become lists. Bracketed section
    specs such as BODY[HEADER.FIELDS (FROM TO)] stay a single atom.

    Args:
        segments: Text chunks and literals in response order.
        single: Stop as soon as the first top-level list is closed.

    Returns:
        The list of top-level tokens.
    """
    root: list = []
    stack: list[list] = [root]

    for segment in segments:
        if isinstance(segment, _Literal):
            stack[-1].append(segment.data)
            continue

        text = segment.decode("utf-8", errors="replace")
        i = 0
        n = len(text)
        while i < n:
            char = text[i]
            if char in " \t\r\n":
                i += 1
            elif char == "(":
                child: list = []
                stack[-1].append(child)
                stack.append(child)
                i += 1
            elif char == ")":
                if len(stack) > 1:
                    stack.pop()
                i += 1
                if single and len(stack) == 1 and root and isinstance(root[0], list):
                    return root
            elif char == '"':
                i += 1
                chars = []
                while i < n and text[i] != '"':
                    if text[i] == "\\" and i + 1 < n:
                        i += 1
                    chars.append(text[i])
                    i += 1
                i += 1  # closing quote
                stack[-1].append("".join(chars))
            else:
                start = i
                depth = 0
                while i < n:
                    c = text[i]
                    if c == "[":
                        depth += 1
                    elif c == "]":
                        depth -= 1
                    elif depth <= 0 and (c in " \t\r\n()" or c == '"'):
                        break
                    i += 1
                atom = text[start:i]
                stack[-1].append(None if atom.upper() == "NIL" else atom)

    return root


def split_fetch_response(lines: Iterable[Any]) -> list[tuple[int, list[bytes | _Literal]]]:
    """
    Group raw response items by message.

    Returns:
        (sequence number, segments) per FETCH response, in server order.
        Status lines that do not belong to a message are dropped.
    """
    groups: list[tuple[int, list[bytes | _Literal]]] = []
    current: list[bytes | _Literal] | None = None
    expect_literal = False

    for item in lines:
        if expect_literal and current is not None:
            current.append(_Literal(_as_bytes(item)))
            expect_literal = False
            continue

        raw = _as_bytes(item)
        match = _FETCH_START.match(raw)
        if match:
            current = []
            groups.append((int(match.group(1)), current))
            raw = raw[match.end():]
        elif current is None:
            continue

        marker = _LITERAL_MARKER.search(raw)
        if marker:
            raw = raw[:marker.start()]
            expect_literal = True
        current.append(raw + b" ")

    return groups


# =============================================================================
# Attribute decoding
# =============================================================================

def _to_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _section_key(name: str) -> str:
    """Normalize a section attribute name: drop PEEK and partial origins."""
    key = name.upper().replace("BODY.PEEK[", "BODY[")
    if key == "RFC822":
        return "BODY[]"
    if key == "RFC822.HEADER":
        return "BODY[HEADER]"
    close = key.rfind("]")
    if close != -1:
        key = key[:close + 1]
    return key


def _params(value: Any) -> dict[str, str]:
    if not isinstance(value, list):
        return {}
    params = {}
    for i in range(0, len(value) - 1, 2):
        params[_to_text(value[i]).lower()] = _to_text(value[i + 1])
    return params


def _disposition(value: Any) -> Disposition | None:
    if not isinstance(value, list) or not value or not isinstance(value[0], (str, bytes)):
        return None
    return Disposition(
        type=_to_text(value[0]).lower(),
        params=_params(value[1]) if len(value) > 1 else {},
    )


def parse_bodystructure(data: Any) -> MimeNode:
    """
    Decode a tokenized BODYSTRUCTURE into a MimeNode tree.

    Multipart: (part part ... "subtype" params disposition language location)
    Single part: ("type" "subtype" params id description encoding size
                  [lines | envelope body lines] md5 disposition ...)
    """
    if not isinstance(data, list) or not data:
        return MimeNode()

    if isinstance(data[0], list):
        parts = []
        i = 0
        while i < len(data) and isinstance(data[i], list):
            parts.append(parse_bodystructure(data[i]))
            i += 1
        subtype = _to_text(data[i]).lower() if i < len(data) else "mixed"
        extension = data[i + 1:]
        return MimeNode(
            content_type=f"multipart/{subtype or 'mixed'}",
            params=_params(extension[0]) if len(extension) > 0 else {},
            disposition=_disposition(extension[1]) if len(extension) > 1 else None,
            parts=parts,
        )

    maintype = _to_text(data[0]).lower() or "text"
    subtype = _to_text(data[1]).lower() if len(data) > 1 else "plain"
    params = _params(data[2]) if len(data) > 2 else {}

    # Extension data starts after the type-specific fields
    parts = []
    extension_start = 7
    if maintype == "text":
        extension_start = 8
    elif maintype == "message" and subtype in ("rfc822", "global"):
        if len(data) > 8 and isinstance(data[8], list):
            parts.append(parse_bodystructure(data[8]))
        extension_start = 10

    disposition = None
    if len(data) > extension_start + 1:
        disposition = _disposition(data[extension_start + 1])
    if disposition is None:
        # Some servers shift the extension fields; take the first
        # disposition-shaped list after the fixed fields
        for candidate in data[extension_start:]:
            if (isinstance(candidate, list) and len(candidate) == 2
                    and isinstance(candidate[0], str)
                    and (candidate[1] is None or isinstance(candidate[1], list))):
                disposition = _disposition(candidate)
                break

    return MimeNode(
        content_type=f"{maintype}/{subtype}",
        params=params,
        disposition=disposition,
        parts=parts,
    )


def parse_fetch_items(seq: int, items: list) -> FetchedMessage:
    """Read the attribute/value pairs of one FETCH response."""
    message = FetchedMessage(seq=seq)

    for i in range(0, len(items) - 1, 2):
        key, value = items[i], items[i + 1]
        if not isinstance(key, str):
            continue
        name = key.upper()

        if name == "UID":
            message.uid = _to_int(value)
        elif name == "FLAGS":
            message.flags = [_to_text(f) for f in value] if isinstance(value, list) else []
        elif name == "RFC822.SIZE":
            message.size = _to_int(value)
        elif name in ("BODYSTRUCTURE", "BODY") and isinstance(value, list):
            message.structure = parse_bodystructure(value)
        elif name.startswith(("BODY[", "BODY.PEEK[")) or name in ("RFC822", "RFC822.HEADER"):
            message.sections[_section_key(name)] = b"" if value is None else _as_bytes(value)

    return message


def parse_fetch_response(lines: Iterable[Any]) -> list[FetchedMessage]:
    """
    Decode every message of a FETCH (or UID FETCH) response.

    Args:
        lines: The `lines` of an aioimaplib Response.

    Returns:
        One FetchedMessage per FETCH response, in server order.
    """
    messages = []
    for seq, segments in split_fetch_response(lines):
        tokens = tokenize(segments, single=True)
        if not tokens or not isinstance(tokens[0], list):
            logger.warning(f"Skipping unparseable FETCH response for message {seq}")
            continue
        messages.append(parse_fetch_items(seq, tokens[0]))
    return messages


def _continues_literal(raw: bytes) -> bool:
    """True if text following a literal belongs to the same response line."""
    text = raw.strip()
    if not text or text.startswith(b")"):
        return True
    if not text.startswith(b"("):
        return False
    # A lone parenthesized group (STATUS values) continues the line; a new
    # LIST line has more tokens after its flag list
    depth = 0
    for index, byte in enumerate(text):
        if byte == ord("("):
            depth += 1
        elif byte == ord(")"):
            depth -= 1
            if depth == 0:
                return index == len(text) - 1
    return True


def split_response_lines(lines: Iterable[Any]) -> list[list[bytes | _Literal]]:
    """
    Fold literals back into the line that announced them.

    Used for untagged responses other than FETCH (LIST, STATUS), where a
    mailbox name may arrive as a literal.

    Returns:
        One segment list per logical response line.
    """
    result: list[list[bytes | _Literal]] = []
    expect_literal = False

    for item in lines:
        if expect_literal and result:
            result[-1].append(_Literal(_as_bytes(item)))
            expect_literal = False
            continue

        raw = _as_bytes(item)
        marker = _LITERAL_MARKER.search(raw)
        if marker:
            raw = raw[:marker.start()]
            expect_literal = True
        if result and isinstance(result[-1][-1], _Literal) and _continues_literal(raw):
            result[-1].append(raw + b" ")
        else:
            result.append([raw + b" "])

    return result
