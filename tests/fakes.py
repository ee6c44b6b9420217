# =============================================================================
# In-Memory IMAP and SMTP Fakes
# =============================================================================
# Stand-ins for the aioimaplib and aiosmtplib clients, injected through the
# client_factory / smtp_factory hooks. FakeIMAP answers with the same
# Response(result, lines) shape aioimaplib produces, literals included, so
# the real response decoding runs in every test.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from email.utils import format_datetime

import aiosmtplib
from aioimaplib.aioimaplib import Response

from mailhawk.core import Credentials
from mailhawk.imap.client import IMAPConnection

TEXT_STRUCTURE = '("text" "plain" ("charset" "utf-8") NIL NIL "7bit" 12 1 NIL NIL NIL NIL)'
ATTACHMENT_STRUCTURE = (
    '(("text" "plain" ("charset" "utf-8") NIL NIL "7bit" 12 1 NIL NIL NIL NIL)'
    '("application" "pdf" ("name" "report.pdf") NIL NIL "base64" 100 NIL '
    '("attachment" ("filename" "report.pdf")) NIL NIL) '
    '"mixed" ("boundary" "b1") NIL NIL NIL)'
)

HEADER_FIELDS = ("From", "To", "Subject", "Date")


def build_raw(
    subject: str = "Hello",
    sender: str = "Alice <alice@example.com>",
    to: str = "Bob <bob@example.com>",
    date: str | None = "Mon, 15 Jan 2024 10:30:00 +0000",
    text: str = "Hi Bob",
    html: str | None = None,
    attachment: tuple[str, str, bytes] | None = None,
) -> bytes:
    """Build an RFC822 message the way a mail client would send it."""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    if date:
        msg["Date"] = date
    msg["Message-ID"] = "<test@example.com>"
    msg.set_content(text)
    if html is not None:
        msg.add_alternative(html, subtype="html")
    if attachment is not None:
        filename, content_type, data = attachment
        maintype, subtype = content_type.split("/")
        msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)
    return msg.as_bytes()


@dataclass
class FakeMessage:
    uid: int
    raw: bytes
    flags: list[str] = field(default_factory=list)
    structure: str = TEXT_STRUCTURE

    @property
    def header_block(self) -> bytes:
        head = self.raw.split(b"\n\n", 1)[0].replace(b"\r\n", b"\n")
        lines = []
        for line in head.split(b"\n"):
            name = line.split(b":", 1)[0].decode()
            if name in HEADER_FIELDS:
                lines.append(line)
        return b"\r\n".join(lines) + b"\r\n\r\n"


def make_messages(count: int, *, first_uid: int = 101) -> list[FakeMessage]:
    """`count` plain messages with ascending UIDs and dates, an hour apart."""
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    messages = []
    for i in range(count):
        date = format_datetime(start + timedelta(hours=i))
        messages.append(FakeMessage(
            uid=first_uid + i,
            raw=build_raw(subject=f"Message {i + 1}", date=date),
        ))
    return messages


@dataclass
class FakeMailbox:
    """Folders of a fake account, by full path."""
    folders: dict[str, list[FakeMessage]] = field(default_factory=lambda: {"INBOX": []})
    delimiter: str = "/"
    noselect: set[str] = field(default_factory=set)
    unseen: dict[str, int] = field(default_factory=dict)


def _unquote(name: str) -> str:
    if len(name) >= 2 and name[0] == name[-1] == '"':
        return name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return name


class FakeIMAP:
    """
    Minimal aioimaplib.IMAP4_SSL lookalike.

    Attributes:
        stall_after: Answer this many FETCH commands, then block forever.
        fail_uid_fetch: Answer every UID FETCH with NO.
        fail_fetch_after: Answer this many FETCH commands, then NO.
        stored: (message set, command, by uid) for each STORE.
    """

    def __init__(self, mailbox: FakeMailbox | None = None, *, password: str = "secret") -> None:
        self.mailbox = mailbox or FakeMailbox()
        self.password = password
        self.hello_error: BaseException | None = None
        self.stall_after: int | None = None
        self.fail_fetch_after: int | None = None
        self.fail_uid_fetch = False
        self.stored: list[tuple[str, str, bool]] = []
        self.commands: list[str] = []
        self.logged_out = False
        self.selected: str | None = None
        self._fetches = 0
        self._never = asyncio.Event()

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def wait_hello_from_server(self) -> None:
        if self.hello_error is not None:
            raise self.hello_error

    async def login(self, user: str, password: str) -> Response:
        self.commands.append("LOGIN")
        if password != self.password:
            return Response("NO", [b"[AUTHENTICATIONFAILED] Authentication failed."])
        return Response("OK", [b"LOGIN completed."])

    async def logout(self) -> Response:
        self.commands.append("LOGOUT")
        self.logged_out = True
        return Response("OK", [b"BYE", b"LOGOUT completed."])

    # -------------------------------------------------------------------------
    # Mailboxes
    # -------------------------------------------------------------------------

    async def list(self, reference: str, pattern: str) -> Response:
        self.commands.append("LIST")
        lines = []
        for name in self.mailbox.folders:
            flags = "\\Noselect" if name in self.mailbox.noselect else "\\HasNoChildren"
            lines.append(f'({flags}) "{self.mailbox.delimiter}" "{name}"'.encode())
        lines.append(b"LIST completed.")
        return Response("OK", lines)

    async def select(self, name: str) -> Response:
        name = _unquote(name)
        self.commands.append(f"SELECT {name}")
        if name not in self.mailbox.folders or name in self.mailbox.noselect:
            self.selected = None
            return Response("NO", [b"[NONEXISTENT] Unknown Mailbox"])
        self.selected = name
        count = len(self.mailbox.folders[name])
        return Response("OK", [
            b"FLAGS (\\Answered \\Flagged \\Deleted \\Seen \\Draft)",
            f"{count} EXISTS".encode(),
            b"0 RECENT",
            b"OK [UIDVALIDITY 1700000000] UIDs valid",
            b"[READ-WRITE] SELECT completed.",
        ])

    async def status(self, name: str, items: str) -> Response:
        name = _unquote(name)
        self.commands.append(f"STATUS {name}")
        if name not in self.mailbox.unseen:
            return Response("NO", [b"STATUS failed."])
        return Response("OK", [
            f'"{name}" (UNSEEN {self.mailbox.unseen[name]})'.encode(),
            b"STATUS completed.",
        ])

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    @property
    def _messages(self) -> list[FakeMessage]:
        return self.mailbox.folders.get(self.selected or "", [])

    def _resolve(self, message_set: str, by_uid: bool) -> list[tuple[int, FakeMessage]]:
        if ":" in message_set:
            low, high = (int(n) for n in message_set.split(":"))
        else:
            low = high = int(message_set)
        found = []
        for seq, message in enumerate(self._messages, start=1):
            key = message.uid if by_uid else seq
            if low <= key <= high:
                found.append((seq, message))
        return found

    def _render(self, seq: int, message: FakeMessage, items: str) -> list:
        attrs = [f"UID {message.uid}"]
        if "FLAGS" in items:
            attrs.append(f"FLAGS ({' '.join(message.flags)})")
        if "RFC822.SIZE" in items:
            attrs.append(f"RFC822.SIZE {len(message.raw)}")
        if "BODYSTRUCTURE" in items:
            attrs.append(f"BODYSTRUCTURE {message.structure}")

        literal = None
        if "HEADER.FIELDS" in items:
            literal = ("BODY[HEADER.FIELDS (FROM TO SUBJECT DATE)]", message.header_block)
        elif "BODY.PEEK[]" in items:
            literal = ("BODY[]", message.raw)

        text = f"{seq} FETCH ({' '.join(attrs)}"
        if literal is None:
            return [f"{text})".encode()]
        name, data = literal
        return [f"{text} {name} {{{len(data)}}}".encode(), bytearray(data), b")"]

    async def _fetch(self, message_set: str, items: str, by_uid: bool) -> Response:
        self._fetches += 1
        if self.stall_after is not None and self._fetches > self.stall_after:
            await self._never.wait()
        if self.fail_fetch_after is not None and self._fetches > self.fail_fetch_after:
            return Response("NO", [b"FETCH failed."])
        if by_uid and self.fail_uid_fetch:
            return Response("NO", [b"UID FETCH not supported."])

        found = self._resolve(message_set, by_uid)
        if not found and not by_uid:
            return Response("BAD", [b"Error in IMAP command FETCH: Invalid messageset"])

        lines = []
        for seq, message in found:
            lines.extend(self._render(seq, message, items))
        lines.append(b"FETCH completed.")
        return Response("OK", lines)

    async def fetch(self, message_set: str, items: str) -> Response:
        self.commands.append(f"FETCH {message_set}")
        return await self._fetch(message_set, items, by_uid=False)

    async def store(self, message_set: str, command: str) -> Response:
        self.commands.append(f"STORE {message_set}")
        self.stored.append((message_set, command, False))
        return Response("OK", [b"STORE completed."])

    async def uid(self, command: str, message_set: str, items: str) -> Response:
        self.commands.append(f"UID {command} {message_set}")
        if command.upper() == "STORE":
            self.stored.append((message_set, items, True))
            return Response("OK", [b"STORE completed."])
        return await self._fetch(message_set, items, by_uid=True)


async def open_connection(fake: FakeIMAP, credentials: Credentials) -> IMAPConnection:
    """A READY IMAPConnection talking to `fake`."""
    connection = IMAPConnection(credentials, client_factory=lambda _: fake)
    await connection.connect()
    return connection


# =============================================================================
# SMTP
# =============================================================================

class FakeSMTP:
    """Minimal aiosmtplib.SMTP lookalike that records what was sent."""

    def __init__(self, recorder: "SMTPRecorder", **kwargs) -> None:
        self.recorder = recorder
        self.options = kwargs
        self.is_connected = False

    async def connect(self) -> None:
        if self.recorder.refuse_connect:
            raise ConnectionRefusedError("Connection refused")
        self.is_connected = True

    async def login(self, user: str, password: str) -> None:
        if self.recorder.reject_login:
            raise aiosmtplib.SMTPAuthenticationError(535, "Authentication credentials invalid")

    async def send_message(self, message, sender=None, recipients=None) -> None:
        if self.recorder.reject_data:
            raise aiosmtplib.SMTPDataError(554, "Transaction failed")
        self.recorder.sent.append((message, sender, list(recipients or [])))

    async def quit(self) -> None:
        self.is_connected = False
        self.recorder.quits += 1


class SMTPRecorder:
    """smtp_factory that hands out FakeSMTP clients and keeps their traffic."""

    def __init__(self) -> None:
        self.clients: list[FakeSMTP] = []
        self.sent: list[tuple] = []
        self.quits = 0
        self.refuse_connect = False
        self.reject_login = False
        self.reject_data = False

    def __call__(self, **kwargs) -> FakeSMTP:
        client = FakeSMTP(self, **kwargs)
        self.clients.append(client)
        return client
