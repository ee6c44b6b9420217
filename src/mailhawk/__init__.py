# =============================================================================
# Mailhawk: An IMAP/SMTP Gateway with a JSON API
# =============================================================================
#
# Mailhawk lets a browser-based mail client talk to any IMAP/SMTP mailbox
# through a small JSON API. A client logs in once, receives a session id,
# and from then on lists folders, reads and sends mail through that session.
#
# Features:
#   - IMAP over TLS with per-session connections
#   - Folder listing as a flattened tree
#   - Resilient message listing (partial results on slow servers)
#   - Single-message retrieval with sanitized HTML
#   - Sending and forwarding via the account's SMTP relay
#   - XDG Base Directory compliant configuration
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "mailhawk"

__all__ = ["__version__", "__app_name__"]
