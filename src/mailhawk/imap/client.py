# =============================================================================
# IMAP Connection
# =============================================================================
# Provides an async IMAP connection wrapper around aioimaplib.
#
# Key responsibilities:
#   - Connection management (connect, close)
#   - Authentication (LOGIN over TLS or plain)
#   - Folder operations (list, select, status)
#   - Message operations (fetch by sequence number or UID, flag)
#
# Design notes:
#   - One IMAPConnection belongs to exactly one gateway session.
#   - Commands on one connection must not interleave. Callers hold
#     `connection.lock` around every command sequence (SELECT + FETCH ...).
#     The methods below do NOT take the lock themselves.
#   - Work that outlives a request (a fetch whose watchdog fired) runs as a
#     background task tracked here, so close() can cancel it.
# =============================================================================

import asyncio
import logging
import re
import ssl
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Coroutine

from aioimaplib import aioimaplib

from mailhawk.core import Credentials
from mailhawk.imap.fetch_response import (
    FetchedMessage,
    parse_fetch_response,
    split_response_lines,
    tokenize,
)

# Set up logging for this module
logger = logging.getLogger(__name__)


def _quote_folder_name(name: str) -> str:
    """
    Quote an IMAP folder name if it contains special characters.

    IMAP folder names with spaces or special characters must be quoted.
    This function wraps folder names in double quotes and escapes
    any internal quotes or backslashes.

    Args:
        name: The folder name to quote.

    Returns:
        Properly quoted folder name for IMAP commands.
    """
    if not name:
        return '""'
    # If name contains spaces, special chars, or quotes, it needs quoting
    if ' ' in name or '"' in name or '\\' in name or any(c in name for c in '(){}[]%*'):
        # Escape backslashes and quotes
        escaped = name.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    return name


class ConnectionState(Enum):
    """Lifecycle of one IMAP connection."""
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


@dataclass
class MailboxEntry:
    """
    One line of a LIST response.

    Attributes:
        name: The full mailbox name as the server reports it.
        delimiter: Hierarchy delimiter, or None for flat namespaces.
        flags: Mailbox attributes (e.g., ["\\HasNoChildren", "\\Sent"]).
    """
    name: str
    delimiter: str | None = None
    flags: list[str] = field(default_factory=list)

    @property
    def selectable(self) -> bool:
        return "\\NOSELECT" not in {f.upper() for f in self.flags}


ClientFactory = Callable[["IMAPConnection"], Any]


class IMAPConnection:
    """
    One authenticated IMAP session.

    Usage:
        >>> connection = IMAPConnection(credentials)
        >>> await connection.connect()
        >>> async with connection.lock:
        ...     status = await connection.select_folder("INBOX")
        ...     messages = await connection.fetch("1:10", "(UID FLAGS)")
        >>> await connection.close()

    Attributes:
        credentials: Login data for this connection.
        state: Current connection state.
        lock: Serializes command sequences on this connection.
        selected_folder: Folder of the last successful SELECT.
    """

    # Timeout for connecting and logging in (seconds)
    TIMEOUT = 30

    def __init__(
        self,
        credentials: Credentials,
        *,
        timeout: float | None = None,
        ssl_context: ssl.SSLContext | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """
        Initialize the connection.

        Args:
            credentials: Login data (host, port, TLS flag, secret).
            timeout: Connect/login timeout in seconds.
            ssl_context: Custom TLS context (e.g., relaxed verification).
            client_factory: Builds the underlying aioimaplib client. Tests
                            pass a factory returning an in-memory fake.
        """
        self.credentials = credentials
        self.timeout = timeout or self.TIMEOUT
        self.ssl_context = ssl_context
        self.state = ConnectionState.CONNECTING
        self.lock = asyncio.Lock()
        self.selected_folder: str | None = None
        self._client_factory = client_factory or self._create_client
        self._client: Any = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_ready(self) -> bool:
        """Check if the connection is logged in and usable."""
        return self.state is ConnectionState.READY and self._client is not None

    def __repr__(self) -> str:
        return f"IMAPConnection({self.credentials}, state={self.state.value})"

    # =========================================================================
    # Connection Management
    # =========================================================================

    def _create_client(self, connection: "IMAPConnection") -> Any:
        """Build the aioimaplib client for the configured transport."""
        if self.credentials.use_tls:
            # Direct TLS connection (usually port 993)
            return aioimaplib.IMAP4_SSL(
                host=self.credentials.host,
                port=self.credentials.port,
                timeout=self.timeout,
                ssl_context=self.ssl_context,
            )
        # Plain connection (usually port 143)
        return aioimaplib.IMAP4(
            host=self.credentials.host,
            port=self.credentials.port,
            timeout=self.timeout,
        )

    async def connect(self) -> None:
        """
        Open the connection, wait for the greeting and log in.

        Raises:
            IMAPConnectionError: If the server cannot be reached or does
                not greet in time.
            IMAPAuthenticationError: If LOGIN is rejected.
            IMAPError: For any other protocol failure.
        """
        creds = self.credentials
        logger.info(f"Connecting to {creds.host}:{creds.port}")
        self.state = ConnectionState.CONNECTING

        try:
            self._client = self._client_factory(self)

            # aioimaplib reports unreachable hosts as a greeting timeout
            await self._client.wait_hello_from_server()
            logger.debug("Connected, logging in")

            await self._authenticate()

        except IMAPError:
            self.state = ConnectionState.ERROR
            await self._discard_client()
            raise
        except asyncio.TimeoutError as e:
            self.state = ConnectionState.ERROR
            await self._discard_client()
            raise IMAPConnectionError(
                f"Connection timed out to {creds.host}:{creds.port}"
            ) from e
        except OSError as e:
            self.state = ConnectionState.ERROR
            await self._discard_client()
            raise IMAPConnectionError(
                f"Failed to connect to {creds.host}:{creds.port}: {e}"
            ) from e
        except aioimaplib.Error as e:
            self.state = ConnectionState.ERROR
            await self._discard_client()
            raise IMAPError(f"IMAP error while connecting to {creds.host}: {e}") from e

        self.state = ConnectionState.READY
        logger.info(f"Successfully connected to {creds.host} as {creds.email}")

    async def _authenticate(self) -> None:
        """
        Log in with the session credentials.

        Raises:
            IMAPAuthenticationError: If login fails.
        """
        logger.debug(f"Authenticating as {self.credentials.email}")

        response = await asyncio.wait_for(
            self._client.login(self.credentials.email, self.credentials.password),
            self.timeout,
        )

        if response.result != "OK":
            # Never include the secret; the server text is safe to show
            raise IMAPAuthenticationError(
                f"Authentication failed for {self.credentials.email}: "
                f"{_response_text(response)}"
            )

        logger.debug("Authentication successful")

    async def _discard_client(self) -> None:
        """Drop a half-open client after a failed connect."""
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await asyncio.wait_for(client.logout(), 5)
        except Exception as e:
            logger.debug(f"Ignoring error while discarding client: {e}")

    async def close(self) -> None:
        """
        Gracefully close the connection.

        Cancels background work, sends LOGOUT and forgets the client.
        Safe to call more than once; errors are logged, never raised.
        """
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED

        tasks = list(self._tasks)
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        client, self._client = self._client, None
        self.selected_folder = None
        if client is None:
            return

        try:
            logger.debug(f"Sending LOGOUT for {self.credentials.email}")
            await asyncio.wait_for(client.logout(), self.timeout)
        except Exception as e:
            logger.warning(f"Error during logout: {e}")

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """
        Run `coro` as a background task owned by this connection.

        The task keeps running if the request that started it stops
        waiting; close() cancels whatever is still pending.
        """
        if self.state is ConnectionState.CLOSED:
            coro.close()
            raise IMAPConnectionError("Connection is closed")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _require_client(self) -> Any:
        if not self.is_ready:
            raise IMAPConnectionError(f"Connection is not ready ({self.state.value})")
        return self._client

    # =========================================================================
    # Folder Operations
    # =========================================================================

    async def list_mailboxes(self) -> list[MailboxEntry]:
        """
        Fetch all mailboxes with LIST "" "*".

        Returns:
            One MailboxEntry per LIST line, in server order.

        Raises:
            IMAPError: If the LIST command fails.
        """
        client = self._require_client()
        logger.debug("Listing folders")

        # Pattern "" "*" means all folders from root
        response = await client.list('""', "*")

        if response.result != "OK":
            raise IMAPError(f"Failed to list folders: {_response_text(response)}")

        entries = []
        for segments in split_response_lines(response.lines):
            entry = self._parse_list_line(segments)
            if entry:
                entries.append(entry)

        logger.debug(f"Found {len(entries)} folders")
        return entries

    def _parse_list_line(self, segments: list) -> MailboxEntry | None:
        """
        Parse a single LIST response line.

        LIST response format:
            (\\HasNoChildren) "/" "INBOX"
            (\\HasChildren) "." Work
            (\\HasNoChildren) "/" {11}<literal name>
        """
        tokens = tokenize(segments)
        if len(tokens) < 3 or not isinstance(tokens[0], list):
            # Status/completion lines ("LIST completed") end up here
            return None

        flags, delimiter, name = tokens[0], tokens[1], tokens[2]
        if isinstance(name, bytes):
            name = name.decode("utf-8", errors="replace")
        if name is None:
            return None

        return MailboxEntry(
            name=str(name),
            delimiter=delimiter or None,
            flags=[str(f) for f in flags if f],
        )

    async def select_folder(self, folder_name: str) -> dict:
        """
        Select a folder read-write.

        Always issues SELECT, even if the folder is already selected, so
        the EXISTS count reflects the server's current state.

        Args:
            folder_name: Full path of the folder.

        Returns:
            Dictionary with folder status (EXISTS, RECENT, UIDVALIDITY, etc.)

        Raises:
            IMAPError: If folder selection fails.
        """
        client = self._require_client()
        logger.debug(f"Selecting folder: {folder_name}")

        response = await client.select(_quote_folder_name(folder_name))

        if response.result != "OK":
            self.selected_folder = None
            raise IMAPError(
                f"Failed to select folder '{folder_name}': {_response_text(response)}"
            )

        status = self._parse_select_response(response)
        self.selected_folder = folder_name

        logger.debug(f"Selected folder: {folder_name}, {status}")
        return status

    def _parse_select_response(self, response) -> dict:
        """Parse SELECT/EXAMINE response into a status dictionary."""
        status = {}

        for line in response.lines:
            if isinstance(line, (bytes, bytearray)):
                line = bytes(line).decode("utf-8", errors="replace")

            # Parse EXISTS
            match = re.search(r"(\d+)\s+EXISTS", line, re.IGNORECASE)
            if match:
                status["EXISTS"] = int(match.group(1))

            # Parse RECENT
            match = re.search(r"(\d+)\s+RECENT", line, re.IGNORECASE)
            if match:
                status["RECENT"] = int(match.group(1))

            # Parse UIDVALIDITY
            match = re.search(r"UIDVALIDITY\s+(\d+)", line, re.IGNORECASE)
            if match:
                status["UIDVALIDITY"] = int(match.group(1))

            # Parse UIDNEXT
            match = re.search(r"UIDNEXT\s+(\d+)", line, re.IGNORECASE)
            if match:
                status["UIDNEXT"] = int(match.group(1))

        return status

    async def get_folder_status(self, folder_name: str, items: str = "(MESSAGES UNSEEN)") -> dict:
        """
        Get status of a folder without selecting it.

        Args:
            folder_name: Full path of the folder.
            items: STATUS data items to request.

        Returns:
            Dictionary such as {"MESSAGES": 12, "UNSEEN": 3}.

        Raises:
            IMAPError: If the STATUS command fails.
        """
        client = self._require_client()

        response = await client.status(_quote_folder_name(folder_name), items)

        if response.result != "OK":
            raise IMAPError(f"STATUS failed for '{folder_name}': {_response_text(response)}")

        # Parse STATUS response
        status = {}
        for line in response.lines:
            if isinstance(line, (bytes, bytearray)):
                line = bytes(line).decode("utf-8", errors="replace")

            # Extract values from the last parenthesized group
            match = re.search(r"\(([^()]*)\)\s*$", line)
            if match:
                values = match.group(1).split()
                for i in range(0, len(values) - 1, 2):
                    key = values[i].upper()
                    try:
                        status[key] = int(values[i + 1])
                    except (ValueError, IndexError):
                        pass

        return status

    # =========================================================================
    # Message Fetching
    # =========================================================================

    async def fetch(
        self,
        message_set: str,
        items: str,
        *,
        uid: bool = False,
    ) -> list[FetchedMessage]:
        """
        Run FETCH (or UID FETCH) in the selected folder.

        Args:
            message_set: Sequence or UID set, e.g. "16:45" or "42".
            items: Parenthesized data items, e.g. "(UID FLAGS BODY.PEEK[])".
            uid: Address messages by UID instead of sequence number.

        Returns:
            The decoded messages, in server order. An id that does not
            exist simply yields no entry.

        Raises:
            IMAPError: If the server answers NO/BAD.
        """
        client = self._require_client()
        logger.debug(f"Fetching {items} for {message_set} (UID={uid})")

        try:
            if uid:
                response = await client.uid("FETCH", message_set, items)
            else:
                response = await client.fetch(message_set, items)
        except aioimaplib.Error as e:
            raise IMAPError(f"Fetch of {message_set} aborted: {e}") from e

        if response.result != "OK":
            raise IMAPError(f"Fetch of {message_set} failed: {_response_text(response)}")

        messages = parse_fetch_response(response.lines)
        logger.debug(f"Fetched {len(messages)} messages")
        return messages

    async def stream_range(
        self,
        start: int,
        end: int,
        items: str,
        *,
        batch_size: int = 10,
    ) -> AsyncIterator[list[FetchedMessage]]:
        """
        Fetch the sequence range start..end in batches.

        Yields each batch as soon as the server has answered it, so callers
        can accumulate partial results while the rest is still in flight.
        """
        batch_size = max(1, batch_size)
        for batch_start in range(start, end + 1, batch_size):
            batch_end = min(end, batch_start + batch_size - 1)
            yield await self.fetch(f"{batch_start}:{batch_end}", items)

    # =========================================================================
    # Flag Operations
    # =========================================================================

    async def add_flags(self, message_set: str, flags: list[str], *, uid: bool = True) -> None:
        """
        Add flags to messages in the selected folder.

        Args:
            message_set: UIDs (or sequence numbers with uid=False).
            flags: Flags to add (e.g., ["\\Seen"]).
            uid: Address messages by UID.

        Raises:
            IMAPError: If the STORE command fails.
        """
        client = self._require_client()
        command = f"+FLAGS ({' '.join(flags)})"

        logger.debug(f"Setting flags on {message_set}: {command}")
        if uid:
            response = await client.uid("STORE", message_set, command)
        else:
            response = await client.store(message_set, command)

        if response.result != "OK":
            raise IMAPError(f"Failed to set flags: {_response_text(response)}")


def _response_text(response) -> str:
    """Human-readable text of a response, for errors and logs."""
    parts = []
    for line in response.lines:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("utf-8", errors="replace")
        parts.append(str(line))
    return " ".join(parts).strip()


# =============================================================================
# Exceptions
# =============================================================================

class IMAPError(Exception):
    """Base exception for IMAP operations."""
    pass


class IMAPConnectionError(IMAPError):
    """Raised when unable to connect to IMAP server."""
    pass


class IMAPAuthenticationError(IMAPError):
    """Raised when IMAP authentication fails."""
    pass
