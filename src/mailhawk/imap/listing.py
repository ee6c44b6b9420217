# =============================================================================
# Listing Pipeline
# =============================================================================
# Produces the newest messages of a folder as summaries.
#
# Flow:
#   1. SELECT the folder and read its EXISTS count
#   2. Compute the sequence range of the newest `listing_limit` messages
#   3. Fetch headers, flags, UID and BODYSTRUCTURE batch by batch,
#      turning each message into a summary as soon as its batch arrives
#   4. Sort by date (newest first) and answer
#
# A watchdog bounds the whole request. When it fires, whatever has been
# collected so far is returned with partial=True; the fetch itself keeps
# running in the background until the server is done with it.
# =============================================================================

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from mailhawk.concurrency import OneShot, Watchdog
from mailhawk.config import FetchSettings
from mailhawk.core import (
    FetchFailure,
    FetchTimeout,
    FolderError,
    GatewayError,
    MessageFlags,
    MessageSummary,
    has_attachments,
)
from mailhawk.imap.client import IMAPConnection, IMAPError
from mailhawk.imap.fetch_response import FetchedMessage
from mailhawk.rendering.parser import (
    decode_header_value,
    parse_address,
    parse_address_list,
    parse_date,
    parse_header_block,
)

logger = logging.getLogger(__name__)

LISTING_ITEMS = "(UID FLAGS BODYSTRUCTURE BODY.PEEK[HEADER.FIELDS (FROM TO SUBJECT DATE)])"


@dataclass
class ListingResult:
    """
    Outcome of one listing request.

    Attributes:
        emails: Summaries, newest first.
        partial: True if the watchdog fired or the fetch failed midway.
    """
    emails: list[MessageSummary] = field(default_factory=list)
    partial: bool = False

    def to_dict(self) -> dict:
        data = {"success": True, "emails": [m.to_dict() for m in self.emails]}
        if self.partial:
            data["partial"] = True
        return data


def compute_range(total: int, limit: int) -> tuple[int, int] | None:
    """
    Sequence range of the newest `limit` messages.

    Example:
        >>> compute_range(45, 30)
        (16, 45)
        >>> compute_range(0, 30) is None
        True
    """
    if total <= 0 or limit <= 0:
        return None
    count = min(limit, total)
    return total - count + 1, total


def summarize(fetched: FetchedMessage) -> MessageSummary:
    """Build a summary from one decoded FETCH response."""
    headers = parse_header_block(fetched.header)
    return MessageSummary(
        seq=fetched.seq,
        uid=fetched.uid,
        subject=decode_header_value(headers.get("Subject")),
        sender=parse_address(headers.get("From")),
        recipients=parse_address_list(headers.get("To")),
        # Messages without a usable date sort as if they just arrived
        date=parse_date(headers.get("Date")) or datetime.now(timezone.utc),
        flags=MessageFlags.from_imap(fetched.flags),
        has_attachments=has_attachments(fetched.structure),
    )


def _numeric_id(summary: MessageSummary) -> int:
    try:
        return int(summary.id)
    except ValueError:
        return 0


def _compare(a: MessageSummary, b: MessageSummary) -> int:
    """Date descending; numeric id descending when either date is missing."""
    if a.date is not None and b.date is not None:
        if a.date == b.date:
            return 0
        return -1 if a.date > b.date else 1
    return _numeric_id(b) - _numeric_id(a)


def sort_summaries(summaries: list[MessageSummary]) -> list[MessageSummary]:
    """Return the summaries newest first."""
    return sorted(summaries, key=functools.cmp_to_key(_compare))


async def _run_listing(
    connection: IMAPConnection,
    folder: str,
    settings: FetchSettings,
    collected: list[MessageSummary],
    reply: OneShot[ListingResult],
) -> None:
    """Background worker: fetch summaries into `collected`, then resolve."""
    try:
        async with connection.lock:
            try:
                status = await connection.select_folder(folder)
            except IMAPError as e:
                raise FolderError(f"Failed to open folder '{folder}': {e}") from e

            bounds = compute_range(status.get("EXISTS", 0), settings.listing_limit)
            if bounds is None:
                reply.resolve(ListingResult())
                return

            start, end = bounds
            logger.debug(f"Listing {folder} messages {start}:{end}")
            try:
                async for batch in connection.stream_range(
                    start, end, LISTING_ITEMS, batch_size=settings.batch_size,
                ):
                    collected.extend(summarize(fetched) for fetched in batch)
            except IMAPError as e:
                if not collected:
                    raise FetchFailure(f"Failed to fetch messages: {e}") from e
                logger.warning(f"Fetch failed after {len(collected)} messages: {e}")
                reply.resolve(ListingResult(sort_summaries(collected), partial=True))
                return

        reply.resolve(ListingResult(sort_summaries(collected)))

    except GatewayError as e:
        reply.fail(e)
    except asyncio.CancelledError:
        reply.fail(FetchFailure("Connection closed while listing messages"))
        raise
    except Exception as e:
        logger.exception(f"Unexpected error while listing {folder}")
        reply.fail(FetchFailure(f"Listing failed: {e}"))


async def list_messages(
    connection: IMAPConnection,
    folder: str = "INBOX",
    settings: FetchSettings | None = None,
) -> ListingResult:
    """
    List the newest messages of a folder.

    Args:
        connection: A READY connection.
        folder: Full path of the folder.
        settings: Limits and timeouts.

    Returns:
        The summaries, newest first, plus a partial marker.

    Raises:
        FolderError: If the folder cannot be selected.
        FetchTimeout: If the watchdog fired before anything arrived
                      (answered with HTTP 500).
        FetchFailure: If the fetch failed before anything arrived.
    """
    settings = settings or FetchSettings()
    collected: list[MessageSummary] = []
    reply: OneShot[ListingResult] = OneShot()

    connection.spawn(_run_listing(connection, folder, settings, collected, reply))

    watchdog = Watchdog(settings.listing_timeout)
    try:
        return await watchdog.watch(reply)
    except asyncio.TimeoutError:
        if collected:
            logger.warning(
                f"Listing {folder} timed out after {settings.listing_timeout}s, "
                f"returning {len(collected)} messages"
            )
            reply.resolve(ListingResult(sort_summaries(collected), partial=True))
        else:
            logger.warning(f"Listing {folder} timed out with no messages")
            reply.fail(FetchTimeout(
                f"Timed out listing messages in '{folder}'", status_code=500,
            ))
        return await reply.wait()
