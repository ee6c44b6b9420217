# =============================================================================
# Mailhawk Core Module
# =============================================================================
# This module contains the core domain models for Mailhawk. These are pure
# Python dataclasses with no external dependencies; they can be imported
# anywhere without causing circular dependency issues.
#
# The core models represent the fundamental concepts of the gateway:
#   - Credentials: Login data for one mailbox (IMAP/SMTP)
#   - Folder: A mailbox folder in the flattened folder list
#   - MessageSummary / FullMessage: Listing entries and retrieved messages
#   - MimeNode: The server-reported MIME structure of a message
#   - GatewayError and friends: The error taxonomy of the HTTP boundary
# =============================================================================

from mailhawk.core.account import Credentials
from mailhawk.core.errors import (
    AuthenticationFailed,
    CapacityExceeded,
    ConnectionFailure,
    DispatchFailure,
    FetchFailure,
    FetchTimeout,
    FolderError,
    GatewayError,
    HostUnreachable,
    InvalidRequest,
    InvalidSession,
    NotFound,
    ParseFailure,
    ProtocolError,
)
from mailhawk.core.folder import Folder
from mailhawk.core.message import (
    Address,
    Attachment,
    FullMessage,
    MessageFlags,
    MessageSummary,
)
from mailhawk.core.structure import Disposition, MimeNode, has_attachments

__all__ = [
    # Models
    "Credentials",
    "Folder",
    "Address",
    "Attachment",
    "MessageFlags",
    "MessageSummary",
    "FullMessage",
    "Disposition",
    "MimeNode",
    "has_attachments",
    # Errors
    "GatewayError",
    "InvalidSession",
    "InvalidRequest",
    "CapacityExceeded",
    "ConnectionFailure",
    "AuthenticationFailed",
    "HostUnreachable",
    "ProtocolError",
    "FolderError",
    "FetchTimeout",
    "FetchFailure",
    "NotFound",
    "ParseFailure",
    "DispatchFailure",
]
