# =============================================================================
# Single-Message Pipeline
# =============================================================================
# Retrieves one message in full: body, attachments, sanitized HTML.
#
# Message ids handed out by the listing are UIDs once known, sequence
# numbers before that. Retrieval therefore tries the id as a UID first and
# falls back to a sequence number; only if both miss is the message gone.
#
# Large messages get more time: the watchdog starts at `message_timeout`
# and is extended to `large_message_timeout` as soon as the server reports
# a size above `large_message_threshold`.
# =============================================================================

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from mailhawk.concurrency import OneShot, Watchdog
from mailhawk.config import FetchSettings
from mailhawk.core import (
    Address,
    FetchFailure,
    FetchTimeout,
    FolderError,
    FullMessage,
    GatewayError,
    InvalidRequest,
    MessageFlags,
    NotFound,
    ParseFailure,
    has_attachments,
)
from mailhawk.imap.client import IMAPConnection, IMAPError
from mailhawk.imap.fetch_response import FetchedMessage
from mailhawk.rendering.parser import (
    ParsedMessage,
    ParseOptions,
    decode_header_value,
    parse_address,
    parse_header_block,
    parse_message,
)
from mailhawk.rendering.sanitize import PLACEHOLDER_BODY, escape_text, sanitize_html, text_to_html

logger = logging.getLogger(__name__)

LOCATE_ITEMS = "(UID RFC822.SIZE)"
BODY_ITEMS = "(UID FLAGS RFC822.SIZE BODYSTRUCTURE BODY.PEEK[])"

MB = 1024 * 1024


@dataclass
class MessageResult:
    """
    Outcome of one retrieval request.

    Attributes:
        email: The message. For unparseable messages a degraded stand-in.
        partial: True if the message could not be parsed.
    """
    email: FullMessage
    partial: bool = False

    def to_dict(self) -> dict:
        data = {"success": True, "email": self.email.to_dict()}
        if self.partial:
            data["partial"] = True
        return data


def parse_message_id(message_id: str | int) -> int:
    """
    Validate a message id from a request.

    Raises:
        InvalidRequest: If the id is not a positive integer.
    """
    text = str(message_id).strip()
    if not text.isdigit() or int(text) == 0:
        raise InvalidRequest(f"Invalid message id: {message_id!r}")
    return int(text)


# =============================================================================
# Locating and fetching
# =============================================================================

async def locate_message(
    connection: IMAPConnection,
    number: int,
) -> tuple[FetchedMessage | None, bool]:
    """
    Find a message by UID, falling back to its sequence number.

    Caller must hold `connection.lock` with the folder selected.

    Returns:
        (located message or None, True if it was found by UID).
    """
    try:
        found = await connection.fetch(str(number), LOCATE_ITEMS, uid=True)
    except IMAPError as e:
        logger.debug(f"UID lookup of {number} failed: {e}")
        found = []
    # Only an exact UID match counts
    found = [m for m in found if m.uid is None or m.uid == number]
    if found:
        return found[0], True

    logger.debug(f"No message with UID {number}, trying sequence number")
    try:
        found = await connection.fetch(str(number), LOCATE_ITEMS)
    except IMAPError as e:
        logger.debug(f"Sequence lookup of {number} failed: {e}")
        found = []
    if found:
        return found[0], False

    return None, False


async def fetch_raw_message(
    connection: IMAPConnection,
    number: int,
    folder: str,
    *,
    on_size: Callable[[int], None] | None = None,
) -> tuple[FetchedMessage, bool]:
    """
    Select `folder` and download message `number` in full.

    Caller must hold `connection.lock`.

    Args:
        connection: A READY connection.
        number: UID or sequence number.
        folder: Full path of the folder.
        on_size: Called with RFC822.SIZE before the body is downloaded.

    Returns:
        (fetched message with BODY[] and BODYSTRUCTURE, True if by UID).

    Raises:
        FolderError: If the folder cannot be selected.
        NotFound: If the id matches neither a UID nor a sequence number.
        FetchFailure: If downloading the body fails.
    """
    try:
        await connection.select_folder(folder)
    except IMAPError as e:
        raise FolderError(f"Failed to open folder '{folder}': {e}") from e

    located, by_uid = await locate_message(connection, number)
    if located is None:
        raise NotFound(f"Message {number} not found in '{folder}'")

    size = located.size or 0
    if on_size is not None:
        on_size(size)

    if size > MB:
        logger.info(f"Downloading message {number} ({size / MB:.1f} MB)")

    address = str(number) if by_uid else str(located.seq)
    try:
        fetched = await connection.fetch(address, BODY_ITEMS, uid=by_uid)
    except IMAPError as e:
        raise FetchFailure(f"Failed to fetch message {number}: {e}") from e
    if not fetched:
        raise NotFound(f"Message {number} disappeared from '{folder}'")

    message = fetched[0]
    if message.uid is None and by_uid:
        message.uid = number
    if size > MB:
        logger.info(f"Downloaded message {number}")
    return message, by_uid


# =============================================================================
# Building the result
# =============================================================================

def render_body(parsed: ParsedMessage) -> str:
    """
    Pick the HTML the client displays.

    Sanitized HTML if present, else the text rendered as <pre>, else
    escaped raw text, else a placeholder.
    """
    if parsed.html:
        return sanitize_html(parsed.html)
    if parsed.text_as_html:
        return parsed.text_as_html
    if parsed.text:
        return text_to_html(parsed.text, links=False)
    return PLACEHOLDER_BODY


def build_message(fetched: FetchedMessage, parsed: ParsedMessage) -> FullMessage:
    """Combine FETCH attributes and the parsed body into a FullMessage."""
    message = FullMessage(
        seq=fetched.seq,
        uid=fetched.uid,
        subject=parsed.subject,
        sender=parsed.sender,
        recipients=parsed.to,
        date=parsed.date or datetime.now(timezone.utc),
        flags=MessageFlags.from_imap(fetched.flags),
        has_attachments=bool(parsed.attachments) or has_attachments(fetched.structure),
        body=render_body(parsed),
        attachments=parsed.attachments,
    )
    message.mark_read()
    return message


def degraded_message(fetched: FetchedMessage, error: Exception) -> FullMessage:
    """A well-formed stand-in for a message whose body could not be parsed."""
    headers = parse_header_block(fetched.body)
    return FullMessage(
        seq=fetched.seq,
        uid=fetched.uid,
        subject=decode_header_value(headers.get("Subject")) or "(message could not be displayed)",
        sender=parse_address(headers.get("From")) if headers.get("From") else Address(),
        date=datetime.now(timezone.utc),
        flags=MessageFlags.from_imap(fetched.flags),
        has_attachments=has_attachments(fetched.structure),
        body=(
            '<div class="error-message">'
            "<p>This message could not be displayed.</p>"
            f"<p>{escape_text(str(error))}</p>"
            "</div>"
        ),
    )


def build_result(fetched: FetchedMessage) -> MessageResult:
    """Parse a fetched message with size-adapted options."""
    options = ParseOptions.for_size(fetched.size or len(fetched.body or b""))
    try:
        parsed = parse_message(fetched.body or b"", options)
    except ParseFailure as e:
        logger.warning(f"Could not parse message {fetched.uid or fetched.seq}: {e}")
        return MessageResult(degraded_message(fetched, e), partial=True)
    return MessageResult(build_message(fetched, parsed))


async def _mark_seen(connection: IMAPConnection, fetched: FetchedMessage, by_uid: bool) -> None:
    """Set \\Seen on a delivered message. Failures are only logged."""
    try:
        if by_uid and fetched.uid is not None:
            await connection.add_flags(str(fetched.uid), ["\\Seen"], uid=True)
        else:
            await connection.add_flags(str(fetched.seq), ["\\Seen"], uid=False)
    except IMAPError as e:
        logger.warning(f"Could not mark message {fetched.uid or fetched.seq} as read: {e}")


# =============================================================================
# Pipeline entry points
# =============================================================================

async def _run_retrieval(
    connection: IMAPConnection,
    number: int,
    folder: str,
    on_size: Callable[[int], None],
    reply: OneShot[MessageResult],
) -> None:
    """Background worker: fetch, parse, answer, then flag."""
    try:
        async with connection.lock:
            fetched, by_uid = await fetch_raw_message(connection, number, folder, on_size=on_size)
            result = build_result(fetched)
            delivered = reply.resolve(result)
            # Flagging happens after the answer is out, still under the lock
            if delivered and not result.partial:
                await _mark_seen(connection, fetched, by_uid)
    except GatewayError as e:
        reply.fail(e)
    except asyncio.CancelledError:
        reply.fail(FetchFailure("Connection closed while fetching message"))
        raise
    except Exception as e:
        logger.exception(f"Unexpected error while fetching message {number}")
        reply.fail(FetchFailure(f"Failed to process message {number}: {e}"))


async def fetch_message(
    connection: IMAPConnection,
    message_id: str | int,
    folder: str = "INBOX",
    settings: FetchSettings | None = None,
) -> MessageResult:
    """
    Retrieve one message in full and mark it as read.

    Args:
        connection: A READY connection.
        message_id: UID or sequence number, as handed out by the listing.
        folder: Full path of the folder.
        settings: Timeouts and size thresholds.

    Raises:
        InvalidRequest: If the id is not numeric.
        FolderError: If the folder cannot be selected.
        NotFound: If the id resolves neither way.
        FetchTimeout: If the watchdog fired first.
        FetchFailure: For any other failure while fetching.
    """
    number = parse_message_id(message_id)
    settings = settings or FetchSettings()

    watchdog = Watchdog(settings.message_timeout)

    def on_size(size: int) -> None:
        if size > settings.large_message_threshold:
            logger.info(
                f"Message {number} is {size / MB:.1f} MB, allowing "
                f"{settings.large_message_timeout}s"
            )
            watchdog.extend(settings.large_message_timeout)

    reply: OneShot[MessageResult] = OneShot()
    connection.spawn(_run_retrieval(connection, number, folder, on_size, reply))

    try:
        return await watchdog.watch(reply)
    except asyncio.TimeoutError:
        logger.warning(f"Fetching message {number} timed out after {watchdog.timeout}s")
        reply.fail(FetchTimeout(f"Timed out fetching message {number}"))
        return await reply.wait()


async def _run_original(
    connection: IMAPConnection,
    number: int,
    folder: str,
    reply: OneShot[ParsedMessage],
) -> None:
    try:
        async with connection.lock:
            fetched, _ = await fetch_raw_message(connection, number, folder)
        reply.resolve(parse_message(fetched.body or b""))
    except GatewayError as e:
        reply.fail(e)
    except asyncio.CancelledError:
        reply.fail(FetchFailure("Connection closed while fetching message"))
        raise
    except Exception as e:
        logger.exception(f"Unexpected error while loading message {number}")
        reply.fail(FetchFailure(f"Failed to load message {number}: {e}"))


async def fetch_original(
    connection: IMAPConnection,
    message_id: str | int,
    folder: str = "INBOX",
    settings: FetchSettings | None = None,
) -> ParsedMessage:
    """
    Load and parse a message for forwarding.

    Same addressing as fetch_message (UID first, then sequence number),
    default parse options, no flag changes.

    Raises:
        GatewayError: Any of the fetch_message failures, or ParseFailure.
    """
    number = parse_message_id(message_id)
    settings = settings or FetchSettings()

    reply: OneShot[ParsedMessage] = OneShot()
    connection.spawn(_run_original(connection, number, folder, reply))

    watchdog = Watchdog(settings.message_timeout)
    try:
        return await watchdog.watch(reply)
    except asyncio.TimeoutError:
        reply.fail(FetchTimeout(f"Timed out loading message {number}"))
        return await reply.wait()
