# =============================================================================
# Session Module
# =============================================================================
# Everything about the lifetime of a gateway session:
#   - establisher: open and authenticate the IMAP connection
#   - registry: map opaque session ids to connections
#   - lifecycle: idle expiry and shutdown
# =============================================================================

from mailhawk.session.establisher import build_ssl_context, establish_connection
from mailhawk.session.lifecycle import SessionSweeper, shutdown_sessions
from mailhawk.session.registry import Session, SessionRegistry

__all__ = [
    "establish_connection",
    "build_ssl_context",
    "Session",
    "SessionRegistry",
    "SessionSweeper",
    "shutdown_sessions",
]
