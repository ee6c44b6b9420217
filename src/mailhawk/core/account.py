# =============================================================================
# Credentials Model
# =============================================================================
# The login data a client hands to /api/connect. One Credentials object opens
# exactly one IMAP session, and the outbound dispatcher reuses it to log in to
# the SMTP relay of the same account.
#
# IMPORTANT: The password is kept only in memory for the lifetime of the
# session. It is excluded from repr() and must never be logged.
# =============================================================================

from dataclasses import dataclass, field


@dataclass
class Credentials:
    """
    Login data for one mailbox.

    Attributes:
        email: The account's email address. Also used as the IMAP/SMTP
               login name and as the From address of outgoing mail.
        password: The account secret. Never printed.
        host: Hostname of the IMAP server (e.g., "imap.web.de").
        port: IMAP port. Standard ports:
              - 993 for IMAP over TLS (recommended)
              - 143 for plain IMAP
        use_tls: Whether to open the connection with TLS from the start.

    Example:
        >>> creds = Credentials(
        ...     email="user@example.com",
        ...     password="secret",
        ...     host="imap.example.com",
        ... )
    """

    email: str
    password: str = field(repr=False)
    host: str
    port: int = 993                     # Default to TLS port
    use_tls: bool = True

    @property
    def domain(self) -> str:
        """The domain part of the email address (used for Message-IDs)."""
        if "@" in self.email:
            return self.email.rsplit("@", 1)[1]
        return self.host

    def __str__(self) -> str:
        """Human-readable representation without the secret."""
        return f"{self.email} @ {self.host}:{self.port}"
