# =============================================================================
# Session Registry
# =============================================================================
# Maps opaque session ids to live IMAP connections.
#
# Every request except /api/connect, /api/health and /api/config names a
# session; the registry resolves it or fails fast with InvalidSession.
#
# All access happens on the event loop thread, so a plain dict is enough.
# =============================================================================

import logging
import secrets
import time
from dataclasses import dataclass, field

from mailhawk.config import SessionSettings
from mailhawk.core import CapacityExceeded, Credentials, InvalidSession
from mailhawk.imap.client import IMAPConnection

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """
    One logged-in client.

    Attributes:
        id: Opaque session id handed to the client.
        connection: The session's IMAP connection.
        created_at: Monotonic creation time.
        last_used: Monotonic time of the last request.
    """
    id: str
    connection: IMAPConnection
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)

    @property
    def credentials(self) -> Credentials:
        return self.connection.credentials

    def touch(self) -> None:
        """Record that the session was just used."""
        self.last_used = time.monotonic()

    def idle_for(self, now: float | None = None) -> float:
        """Seconds since the last request."""
        return (now if now is not None else time.monotonic()) - self.last_used


class SessionRegistry:
    """
    In-memory session table.

    Usage:
        >>> registry = SessionRegistry(config.sessions)
        >>> session_id = registry.create(connection)
        >>> registry.get(session_id).connection is connection
        True
        >>> await registry.close(session_id)
    """

    def __init__(self, settings: SessionSettings | None = None) -> None:
        self.settings = settings or SessionSettings()
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def ids(self) -> list[str]:
        """All registered session ids."""
        return list(self._sessions)

    def _new_id(self) -> str:
        while True:
            session_id = secrets.token_urlsafe(32)
            if session_id not in self._sessions:
                return session_id

    def check_capacity(self) -> None:
        """
        Raises:
            CapacityExceeded: If no further session may be created.
        """
        if len(self._sessions) >= self.settings.max_sessions:
            raise CapacityExceeded(
                f"Too many active sessions ({self.settings.max_sessions})"
            )

    def create(self, connection: IMAPConnection) -> str:
        """
        Register a connection under a fresh session id.

        Raises:
            CapacityExceeded: If the registry is full.
        """
        self.check_capacity()
        session_id = self._new_id()
        self._sessions[session_id] = Session(session_id, connection)
        logger.info(f"Session created for {connection.credentials.email} ({len(self._sessions)} active)")
        return session_id

    def get(self, session_id: str | None) -> Session:
        """
        Resolve a session id and mark the session as used.

        Raises:
            InvalidSession: If the id is missing or unknown.
        """
        if not session_id:
            raise InvalidSession("Missing session id")
        session = self._sessions.get(session_id)
        if session is None:
            raise InvalidSession("Invalid session")
        session.touch()
        return session

    def remove(self, session_id: str | None) -> IMAPConnection | None:
        """Unregister a session, returning its connection (if any)."""
        if not session_id:
            return None
        session = self._sessions.pop(session_id, None)
        return session.connection if session else None

    def expired(self, now: float | None = None) -> list[str]:
        """Ids of sessions idle longer than the configured timeout."""
        limit = self.settings.idle_timeout_minutes * 60
        return [
            session_id
            for session_id, session in self._sessions.items()
            if session.idle_for(now) > limit
        ]

    async def close(self, session_id: str | None) -> bool:
        """
        Unregister a session and close its connection.

        Returns:
            True if the session existed.
        """
        connection = self.remove(session_id)
        if connection is None:
            return False
        await connection.close()
        logger.info(f"Session closed for {connection.credentials.email} ({len(self._sessions)} active)")
        return True

    async def close_all(self) -> int:
        """
        Close every session.

        Returns:
            Number of sessions closed.
        """
        closed = 0
        for session_id in self.ids():
            if await self.close(session_id):
                closed += 1
        return closed
