# =============================================================================
# Outbound Dispatcher
# =============================================================================
# Sends new messages and forwards existing ones on behalf of a session.
#
# The SMTP relay is derived from the session's IMAP host ("imap.web.de" ->
# "smtp.web.de") unless the client names one explicitly. Each dispatch opens
# its own short-lived SMTP connection with the session credentials.
#
# Forwarding re-fetches the original over the session's IMAP connection,
# quotes it below the sender's note and carries its attachments over. If
# the original cannot be loaded, a placeholder stands in for it so the
# forward still goes out.
# =============================================================================

import logging
from dataclasses import dataclass

from mailhawk.config import FetchSettings, SMTPSettings
from mailhawk.core import (
    Address,
    Credentials,
    DispatchFailure,
    FolderError,
    GatewayError,
    InvalidRequest,
)
from mailhawk.imap.client import IMAPConnection
from mailhawk.imap.retrieval import fetch_original
from mailhawk.rendering.parser import ParsedMessage
from mailhawk.rendering.sanitize import escape_text, sanitize_html
from mailhawk.smtp.client import EmailDraft, SMTPClient, SMTPError, SMTPFactory

logger = logging.getLogger(__name__)

# Leading host labels that name the IMAP service
IMAP_HOST_LABELS = ("imap", "imaps", "imap4")

FORWARD_SEPARATOR = "---------- Forwarded message ----------"
UNKNOWN = "Unknown"
NO_SUBJECT = "(no subject)"


@dataclass
class SmtpRelay:
    """Explicit relay settings from a send request; None means derive."""
    host: str | None = None
    port: int | None = None
    secure: bool | None = None


def derive_smtp_host(imap_host: str) -> str:
    """
    Derive the SMTP relay host from the IMAP host.

    Example:
        >>> derive_smtp_host("imap.web.de")
        'smtp.web.de'
        >>> derive_smtp_host("mail.example.com")
        'mail.example.com'
    """
    label, dot, rest = imap_host.partition(".")
    if dot and label.lower() in IMAP_HOST_LABELS:
        return f"smtp.{rest}"
    return imap_host


def recipient_list(value: str | list[str] | None) -> list[str]:
    """
    Normalize a recipient field to a list of addresses.

    Accepts a list or a comma-separated string; blank entries are dropped.
    """
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    joined = ",".join(value)
    return [address.strip() for address in joined.split(",") if address.strip()]


def forward_subject(subject: str) -> str:
    """Prefix "Fwd: " unless the subject already starts with "Fwd:"."""
    subject = subject or NO_SUBJECT
    if subject.lower().startswith("fwd:"):
        return subject
    return f"Fwd: {subject}"


def placeholder_original() -> ParsedMessage:
    """Stand-in for an original message that could not be loaded."""
    return ParsedMessage(subject="", sender=Address(name=UNKNOWN))


def _format_addresses(addresses: list[Address]) -> str:
    return ", ".join(str(a) for a in addresses if a.address or a.name) or UNKNOWN


def build_forward_draft(
    original: ParsedMessage,
    *,
    to: list[str],
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
    additional_text: str = "",
) -> EmailDraft:
    """
    Build the forward of `original`.

    The text body is the additional text, a quoted header block
    (From/Date/Subject/To) and the original text. If the original has
    HTML, a parallel HTML body is built the same way.
    """
    sender = str(original.sender) if (original.sender.address or original.sender.name) else UNKNOWN
    date_str = original.date.strftime("%Y-%m-%d %H:%M") if original.date else UNKNOWN
    subject = original.subject or NO_SUBJECT
    recipients = _format_addresses(original.to)

    header_lines = [
        f"From: {sender}",
        f"Date: {date_str}",
        f"Subject: {subject}",
        f"To: {recipients}",
    ]

    body_text = ""
    if additional_text:
        body_text += f"{additional_text}\n\n"
    body_text += f"{FORWARD_SEPARATOR}\n\n" + "\n".join(header_lines) + "\n\n"
    body_text += original.text or ""

    body_html = ""
    if original.html:
        if additional_text:
            body_html += f"<p>{escape_text(additional_text).replace(chr(10), '<br>')}</p>"
        body_html += f"<hr><div><p><b>{FORWARD_SEPARATOR}</b></p>"
        for line in header_lines:
            label, _, value = line.partition(": ")
            body_html += f"<p><b>{label}:</b> {escape_text(value)}</p>"
        body_html += "</div>"
        body_html += f'<div style="margin-top:10px;">{sanitize_html(original.html)}</div>'

    attachments = [
        (a.filename, a.content_type, a.data)
        for a in original.attachments
        if a.data is not None
    ]

    return EmailDraft(
        to=to,
        cc=cc or [],
        bcc=bcc or [],
        subject=forward_subject(original.subject),
        body_text=body_text,
        body_html=body_html,
        attachments=attachments,
    )


class OutboundDispatcher:
    """
    Sends and forwards mail for gateway sessions.

    Usage:
        >>> dispatcher = OutboundDispatcher(config.smtp, config.fetch)
        >>> message_id = await dispatcher.send(credentials, draft)

    Attributes:
        smtp_settings: Relay defaults (port, TLS mode, timeouts).
        fetch_settings: Timeouts for loading originals to forward.
    """

    def __init__(
        self,
        smtp_settings: SMTPSettings | None = None,
        fetch_settings: FetchSettings | None = None,
        *,
        smtp_factory: SMTPFactory | None = None,
    ) -> None:
        self.smtp_settings = smtp_settings or SMTPSettings()
        self.fetch_settings = fetch_settings or FetchSettings()
        self._smtp_factory = smtp_factory

    def resolve_relay(self, credentials: Credentials, relay: SmtpRelay | None = None) -> tuple[str, int, bool]:
        """Host, port and TLS mode for this session's outgoing mail."""
        relay = relay or SmtpRelay()
        host = relay.host or derive_smtp_host(credentials.host)
        port = relay.port or self.smtp_settings.default_port
        secure = relay.secure if relay.secure is not None else self.smtp_settings.secure
        return host, port, secure

    async def send(
        self,
        credentials: Credentials,
        draft: EmailDraft,
        relay: SmtpRelay | None = None,
    ) -> str:
        """
        Send a draft through the session's relay.

        Returns:
            The Message-ID of the sent message.

        Raises:
            DispatchFailure: If connecting, authenticating or sending fails.
        """
        if not draft.recipients:
            raise DispatchFailure("No recipients specified")

        host, port, secure = self.resolve_relay(credentials, relay)
        client = SMTPClient(
            credentials,
            host,
            port,
            secure,
            timeout=self.smtp_settings.timeout,
            validate_certs=self.smtp_settings.verify_certificates,
            smtp_factory=self._smtp_factory,
        )

        try:
            await client.connect()
            return await client.send(draft)
        except SMTPError as e:
            raise DispatchFailure(str(e)) from e
        finally:
            await client.disconnect()

    async def forward(
        self,
        credentials: Credentials,
        connection: IMAPConnection,
        original_id: str,
        *,
        folder: str = "INBOX",
        to: list[str],
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        additional_text: str = "",
    ) -> str:
        """
        Forward a message of this session's mailbox.

        Raises:
            InvalidRequest: If the original id is not numeric.
            FolderError: If the folder cannot be selected.
            DispatchFailure: If sending fails.
        """
        try:
            original = await fetch_original(connection, original_id, folder, self.fetch_settings)
        except (InvalidRequest, FolderError):
            raise
        except GatewayError as e:
            logger.warning(f"Forwarding {original_id} without its content: {e.message}")
            original = placeholder_original()

        draft = build_forward_draft(
            original,
            to=to,
            cc=cc,
            bcc=bcc,
            additional_text=additional_text,
        )
        logger.info(f"Forwarding message {original_id} from {folder}")
        return await self.send(credentials, draft)
