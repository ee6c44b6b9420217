# =============================================================================
# SMTP Module
# =============================================================================
# Handles sending emails via SMTP (Simple Mail Transfer Protocol).
#
# Features:
#   - Connection with implicit TLS or STARTTLS
#   - MIME message building (text, HTML, attachments)
#   - Relay derivation from the session's IMAP host
#   - Forwarding with quoted original and carried-over attachments
# =============================================================================

from mailhawk.smtp.client import (
    EmailDraft,
    SendError,
    SMTPAuthenticationError,
    SMTPClient,
    SMTPConnectionError,
    SMTPError,
)
from mailhawk.smtp.dispatch import (
    OutboundDispatcher,
    SmtpRelay,
    build_forward_draft,
    derive_smtp_host,
    forward_subject,
    recipient_list,
)

__all__ = [
    # Client
    "SMTPClient",
    "EmailDraft",
    "SMTPError",
    "SMTPConnectionError",
    "SMTPAuthenticationError",
    "SendError",
    # Dispatch
    "OutboundDispatcher",
    "SmtpRelay",
    "build_forward_draft",
    "derive_smtp_host",
    "forward_subject",
    "recipient_list",
]
