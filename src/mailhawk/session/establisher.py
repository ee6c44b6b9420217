# =============================================================================
# Connection Establisher
# =============================================================================
# Opens and authenticates the IMAP connection behind a new session, and
# translates transport failures into the gateway's error taxonomy:
#
#   IMAPAuthenticationError  -> AuthenticationFailed (401)
#   IMAPConnectionError      -> HostUnreachable      (500)
#   other IMAPError          -> ProtocolError        (500)
#
# The password is only ever passed to LOGIN; it never appears in a log line
# or an error message.
# =============================================================================

import logging
import ssl

from mailhawk.config import IMAPSettings
from mailhawk.core import AuthenticationFailed, Credentials, HostUnreachable, ProtocolError
from mailhawk.imap.client import (
    ClientFactory,
    IMAPAuthenticationError,
    IMAPConnection,
    IMAPConnectionError,
    IMAPError,
)

logger = logging.getLogger(__name__)


def build_ssl_context(verify: bool) -> ssl.SSLContext:
    """
    TLS context for IMAP connections.

    With verification off, hostname checks and certificate validation are
    disabled; self-signed servers then work, at the cost of security.
    """
    context = ssl.create_default_context()
    if not verify:
        logger.warning("IMAP certificate verification is disabled")
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


async def establish_connection(
    credentials: Credentials,
    settings: IMAPSettings | None = None,
    *,
    client_factory: ClientFactory | None = None,
) -> IMAPConnection:
    """
    Open a READY IMAP connection for `credentials`.

    Args:
        credentials: Login data from the connect request.
        settings: Timeout and certificate policy.
        client_factory: Optional aioimaplib client factory (tests).

    Returns:
        A logged-in connection.

    Raises:
        AuthenticationFailed: If the server rejects the login.
        HostUnreachable: If the server cannot be reached in time.
        ProtocolError: For any other IMAP failure.
    """
    settings = settings or IMAPSettings()
    ssl_context = build_ssl_context(settings.verify_certificates) if credentials.use_tls else None

    connection = IMAPConnection(
        credentials,
        timeout=settings.timeout,
        ssl_context=ssl_context,
        client_factory=client_factory,
    )

    try:
        await connection.connect()
    except IMAPAuthenticationError as e:
        logger.warning(f"Login rejected for {credentials.email} on {credentials.host}")
        raise AuthenticationFailed(str(e)) from e
    except IMAPConnectionError as e:
        logger.warning(f"Could not reach {credentials.host}:{credentials.port}: {e}")
        raise HostUnreachable(str(e)) from e
    except IMAPError as e:
        logger.warning(f"IMAP error while connecting to {credentials.host}: {e}")
        raise ProtocolError(str(e)) from e

    return connection
