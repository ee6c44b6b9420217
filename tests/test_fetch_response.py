# =============================================================================
# FETCH Response Decoding Tests
# =============================================================================

from mailhawk.core import has_attachments
from mailhawk.imap.fetch_response import (
    parse_bodystructure,
    parse_fetch_response,
    split_response_lines,
    tokenize,
)

from fakes import ATTACHMENT_STRUCTURE, TEXT_STRUCTURE


def _structure(text: str):
    return parse_bodystructure(tokenize([text.encode()])[0])


class TestTokenize:
    def test_nested_lists_and_nil(self):
        tokens = tokenize([b'(UID 5 FLAGS (\\Seen \\Flagged) X NIL "a \\"b\\"")'])
        assert tokens == [["UID", "5", "FLAGS", ["\\Seen", "\\Flagged"], "X", None, 'a "b"']]

    def test_section_spec_stays_one_atom(self):
        tokens = tokenize([b"(BODY[HEADER.FIELDS (FROM TO)] NIL)"])
        assert tokens[0][0] == "BODY[HEADER.FIELDS (FROM TO)]"


class TestParseFetchResponse:
    def test_literals_and_attributes(self):
        header = b"From: Alice <alice@example.com>\r\nSubject: Hi\r\n\r\n"
        lines = [
            f"1 FETCH (UID 42 FLAGS (\\Seen) RFC822.SIZE 2048 "
            f"BODY[HEADER.FIELDS (FROM TO SUBJECT DATE)] {{{len(header)}}}".encode(),
            bytearray(header),
            b")",
            b"2 FETCH (UID 43 FLAGS ())",
            b"FETCH completed.",
        ]

        messages = parse_fetch_response(lines)

        assert [m.seq for m in messages] == [1, 2]
        first = messages[0]
        assert first.uid == 42
        assert first.flags == ["\\Seen"]
        assert first.size == 2048
        assert first.header == header
        assert messages[1].uid == 43
        assert messages[1].flags == []

    def test_peek_section_is_stored_as_body(self):
        raw = b"Subject: x\r\n\r\nbody"
        lines = [f"3 FETCH (UID 7 BODY[] {{{len(raw)}}}".encode(), bytearray(raw), b")"]

        message = parse_fetch_response(lines)[0]

        assert message.body == raw

    def test_status_lines_only(self):
        assert parse_fetch_response([b"FETCH completed."]) == []


class TestBodyStructure:
    def test_single_text_part(self):
        node = _structure(TEXT_STRUCTURE)
        assert node.content_type == "text/plain"
        assert node.params == {"charset": "utf-8"}
        assert node.disposition is None
        assert not has_attachments(node)

    def test_multipart_with_attachment(self):
        node = _structure(ATTACHMENT_STRUCTURE)
        assert node.content_type == "multipart/mixed"
        assert len(node.parts) == 2
        pdf = node.parts[1]
        assert pdf.content_type == "application/pdf"
        assert pdf.disposition.type == "attachment"
        assert pdf.disposition.params == {"filename": "report.pdf"}
        assert has_attachments(node)

    def test_attachment_inside_forwarded_message(self):
        inner = ATTACHMENT_STRUCTURE
        text = (
            f'(("text" "plain" ("charset" "utf-8") NIL NIL "7bit" 10 1 NIL NIL NIL NIL)'
            f'("message" "rfc822" NIL NIL NIL "7bit" 900 '
            f'(NIL "Inner" NIL NIL NIL NIL NIL NIL NIL NIL) {inner} 20 NIL NIL NIL NIL) '
            f'"mixed" ("boundary" "outer") NIL NIL NIL)'
        )
        node = _structure(text)

        forwarded = node.parts[1]
        assert forwarded.content_type == "message/rfc822"
        assert forwarded.parts[0].content_type == "multipart/mixed"
        assert has_attachments(node)


class TestSplitResponseLines:
    def test_literal_mailbox_name(self):
        lines = [
            b'(\\HasNoChildren) "/" {11}',
            bytearray(b"Caf\xc3\xa9 Notes"),
            b'(\\HasNoChildren) "/" "Sent"',
            b"LIST completed.",
        ]

        groups = split_response_lines(lines)

        assert len(groups) == 3
        assert tokenize(groups[0])[2] == "Café Notes".encode()
        assert tokenize(groups[1])[2] == "Sent"
