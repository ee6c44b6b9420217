# =============================================================================
# SMTP Client
# =============================================================================
# Provides async SMTP client for sending emails.
#
# Key responsibilities:
#   - Connection management with implicit TLS or opportunistic STARTTLS
#   - Building MIME messages (plain text, HTML, attachments)
#   - Sending emails (Bcc recipients go into the envelope only)
#
# Uses aiosmtplib for async operations. A client lives for exactly one
# send: the gateway connects, authenticates with the session credentials,
# sends and quits.
# =============================================================================

import logging
from dataclasses import dataclass, field
from email.encoders import encode_base64
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import Any, Callable

import aiosmtplib

from mailhawk.core import Credentials

logger = logging.getLogger(__name__)


@dataclass
class EmailDraft:
    """
    Represents an email ready to be sent.

    Attributes:
        to: List of recipient email addresses.
        cc: List of CC recipients.
        bcc: List of BCC recipients.
        subject: Email subject line.
        body_text: Plain text body.
        body_html: HTML body (optional).
        attachments: List of (filename, content_type, data) tuples.
        in_reply_to: Message-ID we're replying to (for threading).
        references: References header (for threading).
    """
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    subject: str = ""
    body_text: str = ""
    body_html: str = ""
    attachments: list[tuple[str, str, bytes]] = field(default_factory=list)
    in_reply_to: str = ""
    references: list[str] = field(default_factory=list)

    @property
    def recipients(self) -> list[str]:
        """Every envelope recipient: To, Cc and Bcc."""
        return self.to + self.cc + self.bcc


SMTPFactory = Callable[..., Any]


class SMTPClient:
    """
    Async SMTP client for sending emails.

    Usage:
        >>> client = SMTPClient(credentials, "smtp.web.de", 587)
        >>> await client.connect()
        >>> message_id = await client.send(draft)
        >>> await client.disconnect()

    Attributes:
        credentials: Login data; the email doubles as the sender address.
        host: SMTP relay hostname.
        port: SMTP relay port.
        secure: True for implicit TLS (port 465), False for STARTTLS
                when the server offers it.
    """

    # Timeout for SMTP operations (seconds)
    TIMEOUT = 30

    def __init__(
        self,
        credentials: Credentials,
        host: str,
        port: int = 587,
        secure: bool = False,
        *,
        timeout: float | None = None,
        validate_certs: bool = True,
        smtp_factory: SMTPFactory | None = None,
    ) -> None:
        """
        Initialize the SMTP client.

        Args:
            credentials: Login data of the session.
            host: SMTP relay hostname.
            port: SMTP relay port.
            secure: Use implicit TLS.
            timeout: Per-operation timeout in seconds.
            validate_certs: Verify the relay's TLS certificate.
            smtp_factory: Builds the aiosmtplib client. Tests pass a fake.
        """
        self.credentials = credentials
        self.host = host
        self.port = port
        self.secure = secure
        self.timeout = timeout or self.TIMEOUT
        self.validate_certs = validate_certs
        self._smtp_factory = smtp_factory or aiosmtplib.SMTP
        self._client: Any = None

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._client is not None and self._client.is_connected

    async def connect(self) -> bool:
        """
        Connect to the SMTP server and log in.

        Returns:
            True if connection succeeded.

        Raises:
            SMTPConnectionError: If unable to connect.
            SMTPAuthenticationError: If authentication fails.
        """
        logger.info(f"Connecting to SMTP {self.host}:{self.port}")

        try:
            # start_tls=None upgrades only if the server offers STARTTLS
            self._client = self._smtp_factory(
                hostname=self.host,
                port=self.port,
                use_tls=self.secure,
                start_tls=False if self.secure else None,
                timeout=self.timeout,
                validate_certs=self.validate_certs,
            )

            await self._client.connect()
            logger.debug("SMTP connection established")

        except Exception as e:
            self._client = None
            raise SMTPConnectionError(
                f"Failed to connect to SMTP {self.host}:{self.port}: {e}"
            ) from e

        await self._authenticate()
        logger.info(f"Successfully connected to SMTP {self.host}")
        return True

    async def _authenticate(self) -> None:
        """
        Authenticate with the session credentials.

        Raises:
            SMTPAuthenticationError: If login fails.
        """
        logger.debug(f"Authenticating as {self.credentials.email}")

        try:
            await self._client.login(self.credentials.email, self.credentials.password)
            logger.debug("SMTP authentication successful")
        except aiosmtplib.SMTPAuthenticationError as e:
            await self.disconnect()
            raise SMTPAuthenticationError(
                f"SMTP authentication failed for {self.credentials.email}: {e}"
            ) from e
        except aiosmtplib.SMTPException as e:
            await self.disconnect()
            raise SMTPConnectionError(f"SMTP login failed on {self.host}: {e}") from e

    async def disconnect(self) -> None:
        """Disconnect from the SMTP server."""
        if self._client and self._client.is_connected:
            try:
                logger.debug("Disconnecting from SMTP")
                await self._client.quit()
            except Exception as e:
                logger.warning(f"Error during SMTP disconnect: {e}")
        self._client = None

    async def send(self, draft: EmailDraft) -> str:
        """
        Send an email.

        Args:
            draft: The email to send.

        Returns:
            Message-ID of the sent message.

        Raises:
            SendError: If sending fails.
        """
        if not self.is_connected:
            raise SendError("Not connected to SMTP server")

        if not draft.recipients:
            raise SendError("No recipients specified")

        try:
            # Build MIME message
            message = self._build_mime_message(draft)

            # Bcc is not in the headers, so pass the envelope explicitly
            logger.info(f"Sending email to {len(draft.recipients)} recipient(s)")
            await self._client.send_message(
                message,
                sender=self.credentials.email,
                recipients=draft.recipients,
            )

            message_id = message["Message-ID"]
            logger.info(f"Email sent successfully: {message_id}")

            return message_id

        except Exception as e:
            logger.error(f"Failed to send email: {e}")
            raise SendError(f"Failed to send email: {e}") from e

    def _build_mime_message(self, draft: EmailDraft) -> MIMEMultipart:
        """
        Build a MIME message from a draft.

        Handles:
            - Plain text only
            - HTML with plain text alternative
            - Attachments

        Returns:
            MIMEMultipart message ready to send.
        """
        # Determine message structure
        has_html = bool(draft.body_html)
        has_attachments = bool(draft.attachments)

        if has_attachments:
            # Mixed: contains body + attachments
            msg = MIMEMultipart("mixed")
            if has_html:
                # Body is alternative (text + html)
                body = MIMEMultipart("alternative")
                body.attach(MIMEText(draft.body_text, "plain", "utf-8"))
                body.attach(MIMEText(draft.body_html, "html", "utf-8"))
                msg.attach(body)
            else:
                # Body is plain text only
                msg.attach(MIMEText(draft.body_text, "plain", "utf-8"))

            # Add attachments
            for filename, content_type, data in draft.attachments:
                maintype, _, subtype = content_type.partition("/")
                part = MIMEBase(maintype or "application", subtype or "octet-stream")
                part.set_payload(data)
                encode_base64(part)
                part.add_header(
                    "Content-Disposition",
                    "attachment",
                    filename=filename
                )
                msg.attach(part)
        elif has_html:
            # Alternative: text + html
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(draft.body_text, "plain", "utf-8"))
            msg.attach(MIMEText(draft.body_html, "html", "utf-8"))
        else:
            # Simple text message
            msg = MIMEMultipart()
            msg.attach(MIMEText(draft.body_text, "plain", "utf-8"))

        # Set headers
        msg["From"] = self.credentials.email
        if draft.to:
            msg["To"] = ", ".join(draft.to)
        if draft.cc:
            msg["Cc"] = ", ".join(draft.cc)
        # Note: BCC is not added to headers (that's the point of BCC)
        msg["Subject"] = draft.subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.credentials.domain)

        # Threading headers
        if draft.in_reply_to:
            msg["In-Reply-To"] = draft.in_reply_to
        if draft.references:
            msg["References"] = " ".join(draft.references)

        # User agent
        msg["X-Mailer"] = "Mailhawk"

        return msg


class SMTPError(Exception):
    """Base exception for SMTP operations."""
    pass


class SMTPConnectionError(SMTPError):
    """Raised when unable to connect to SMTP server."""
    pass


class SMTPAuthenticationError(SMTPError):
    """Raised when SMTP authentication fails."""
    pass


class SendError(SMTPError):
    """Raised when email sending fails."""
    pass
