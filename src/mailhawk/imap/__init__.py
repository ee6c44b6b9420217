# =============================================================================
# IMAP Module
# =============================================================================
# Handles all IMAP (Internet Message Access Protocol) operations:
#   - Connecting and logging in (client)
#   - Decoding FETCH responses and BODYSTRUCTURE (fetch_response)
#   - Listing folders as a flattened tree (folders)
#   - Listing the newest messages of a folder (listing)
#   - Retrieving one message in full (retrieval)
#
# This module uses aioimaplib for async IMAP operations, so one slow
# mailbox never blocks requests for another session.
# =============================================================================

from mailhawk.imap.client import (
    ConnectionState,
    IMAPAuthenticationError,
    IMAPConnection,
    IMAPConnectionError,
    IMAPError,
    MailboxEntry,
)
from mailhawk.imap.fetch_response import FetchedMessage, parse_bodystructure, parse_fetch_response
from mailhawk.imap.folders import list_folders
from mailhawk.imap.listing import ListingResult, compute_range, list_messages, sort_summaries
from mailhawk.imap.retrieval import MessageResult, fetch_message, fetch_original

__all__ = [
    # Client
    "IMAPConnection",
    "IMAPError",
    "IMAPConnectionError",
    "IMAPAuthenticationError",
    "ConnectionState",
    "MailboxEntry",
    # Responses
    "FetchedMessage",
    "parse_bodystructure",
    "parse_fetch_response",
    # Pipelines
    "list_folders",
    "ListingResult",
    "compute_range",
    "list_messages",
    "sort_summaries",
    "MessageResult",
    "fetch_message",
    "fetch_original",
]
