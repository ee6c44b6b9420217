# =============================================================================
# Lifecycle Manager
# =============================================================================
# Keeps the session table from growing without bound and tears everything
# down on shutdown.
#
#   - SessionSweeper: background task closing sessions idle longer than
#     sessions.idle_timeout_minutes, checked every sweep_interval_seconds
#   - shutdown_sessions: stops the sweeper and closes every connection
#
# uvicorn turns SIGINT/SIGTERM into the ASGI lifespan shutdown, which is
# where shutdown_sessions runs.
# =============================================================================

import asyncio
import logging

from mailhawk.session.registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionSweeper:
    """
    Periodically closes idle sessions.

    Usage:
        >>> sweeper = SessionSweeper(registry)
        >>> sweeper.start()
        >>> ...
        >>> await sweeper.stop()
    """

    def __init__(self, registry: SessionRegistry, interval: float | None = None) -> None:
        self.registry = registry
        self.interval = interval or registry.settings.sweep_interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start sweeping in the background (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Session sweeper started (every {self.interval}s)")

    async def stop(self) -> None:
        """Stop sweeping and wait for the task to finish."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def sweep(self, now: float | None = None) -> int:
        """
        Close every expired session once.

        Returns:
            Number of sessions closed.
        """
        closed = 0
        for session_id in self.registry.expired(now):
            if await self.registry.close(session_id):
                closed += 1
        if closed:
            logger.info(f"Closed {closed} idle session(s)")
        return closed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Session sweep failed")


async def shutdown_sessions(registry: SessionRegistry, sweeper: SessionSweeper | None = None) -> int:
    """
    Stop the sweeper and close every session exactly once.

    Returns:
        Number of sessions closed.
    """
    if sweeper is not None:
        await sweeper.stop()
    count = len(registry)
    if count:
        logger.info(f"Closing {count} IMAP connection(s)")
    return await registry.close_all()
