# =============================================================================
# Message Models
# =============================================================================
# Represents email messages as the gateway hands them to clients:
#   - MessageSummary: one row of a folder listing (headers, flags, structure)
#   - FullMessage: a summary plus the sanitized HTML body and attachment list
#
# Identity is subtle. While a FETCH response is still being read, we only
# know a message's sequence number; once the UID attribute arrives, the UID
# becomes its id. Clients must accept either form, and the retrieval
# pipeline resolves both (UID first, sequence number as fallback).
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntFlag


class MessageFlags(IntFlag):
    """
    IMAP system flags (RFC 3501), stored as a bitmask.

    Usage:
        if summary.flags & MessageFlags.SEEN:
            print("Message has been read")
    """
    NONE = 0            # No flags set
    SEEN = 1 << 0       # Message has been read (\\Seen)
    ANSWERED = 1 << 1   # Message has been replied to (\\Answered)
    FLAGGED = 1 << 2    # User-flagged / starred (\\Flagged)
    DELETED = 1 << 3    # Marked for deletion (\\Deleted)
    DRAFT = 1 << 4      # Is a draft (\\Draft)

    @classmethod
    def from_imap(cls, flags: list[str]) -> "MessageFlags":
        """Convert a list of IMAP flag atoms into MessageFlags."""
        result = cls.NONE
        upper = {f.upper() for f in flags}
        if "\\SEEN" in upper:
            result |= cls.SEEN
        if "\\ANSWERED" in upper:
            result |= cls.ANSWERED
        if "\\FLAGGED" in upper:
            result |= cls.FLAGGED
        if "\\DELETED" in upper:
            result |= cls.DELETED
        if "\\DRAFT" in upper:
            result |= cls.DRAFT
        return result


@dataclass
class Address:
    """A mailbox address with an optional display name."""
    address: str = ""
    name: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "address": self.address}

    def __str__(self) -> str:
        if self.name and self.address:
            return f"{self.name} <{self.address}>"
        return self.name or self.address


@dataclass
class Attachment:
    """
    Represents a file attached to an email message.

    Attachments can be:
        - Regular attachments: Files the user explicitly attached
        - Inline attachments: Images embedded in HTML (referenced by Content-ID)

    Attributes:
        filename: Original filename of the attachment.
        content_type: MIME type (e.g., "application/pdf", "image/png").
        size: Size in bytes.
        content_id: For inline images, the Content-ID used in HTML <img> tags.
        is_inline: True if embedded in the HTML body.
        data: The decoded payload. Kept so forwarded messages can carry
              the original attachments unchanged.
    """
    filename: str
    content_type: str
    size: int

    # For inline images (embedded in HTML)
    content_id: str | None = None       # Content-ID for <img src="cid:...">
    is_inline: bool = False             # True if embedded in HTML body

    data: bytes | None = field(default=None, repr=False)

    def to_dict(self) -> dict:
        """Metadata only; payloads never travel through the JSON boundary."""
        return {
            "filename": self.filename,
            "contentType": self.content_type,
            "size": self.size,
            "inline": self.is_inline,
        }


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


@dataclass
class MessageSummary:
    """
    One entry of a folder listing.

    Attributes:
        seq: Sequence number at the time of the fetch.
        uid: IMAP UID, or None until the UID attribute has been seen.
        subject: Decoded subject line.
        sender: The From address.
        recipients: The To addresses.
        date: Date header in UTC. Listing falls back to "now" for bad dates.
        flags: IMAP flags.
        has_attachments: Result of the structure-tree walk.
    """
    seq: int = 0
    uid: int | None = None
    subject: str = ""
    sender: Address = field(default_factory=Address)
    recipients: list[Address] = field(default_factory=list)
    date: datetime | None = None
    flags: MessageFlags = MessageFlags.NONE
    has_attachments: bool = False

    @property
    def id(self) -> str:
        """The UID once known, the sequence number before that."""
        if self.uid is not None:
            return str(self.uid)
        return str(self.seq)

    @property
    def is_read(self) -> bool:
        """Returns True if the message has been read (SEEN flag)."""
        return bool(self.flags & MessageFlags.SEEN)

    def mark_read(self) -> None:
        """Mark this message as read."""
        self.flags |= MessageFlags.SEEN

    def to_dict(self) -> dict:
        """JSON shape used by /api/emails."""
        return {
            "id": self.id,
            "uid": str(self.uid) if self.uid is not None else None,
            "subject": self.subject,
            "from": self.sender.to_dict(),
            "to": [r.to_dict() for r in self.recipients],
            "date": _isoformat(self.date),
            "isRead": self.is_read,
            "hasAttachments": self.has_attachments,
        }

    def __repr__(self) -> str:
        """Developer-friendly representation."""
        return (
            f"MessageSummary(id={self.id}, subject={self.subject!r}, "
            f"from={self.sender.address!r}, flags={self.flags})"
        )


@dataclass
class FullMessage(MessageSummary):
    """
    A summary plus the sanitized body and attachment metadata.

    Attributes:
        body: Sanitized HTML, safe to inject into the client's viewer.
        attachments: Attachments found while parsing.
    """
    body: str = ""
    attachments: list[Attachment] = field(default_factory=list)

    def to_dict(self) -> dict:
        """JSON shape used by /api/email/{id}."""
        data = super().to_dict()
        data["body"] = self.body
        data["attachments"] = [a.to_dict() for a in self.attachments]
        return data
