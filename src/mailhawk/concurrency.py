# =============================================================================
# One-Shot Completion and Watchdogs
# =============================================================================
# Every pipeline answers a request exactly once, no matter whether the fetch
# completes, fails, or a watchdog fires first. Instead of a "has responded"
# boolean sprinkled over every exit path, the worker and the watchdog race to
# resolve a OneShot; whoever loses is simply ignored.
#
# Watchdogs never cancel the worker. The underlying IMAP command keeps
# running until the server finishes it; the caller just stops waiting.
# =============================================================================

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class OneShot(Generic[T]):
    """
    A result that can be set exactly once.

    Usage:
        >>> reply: OneShot[int] = OneShot()
        >>> reply.resolve(1)
        True
        >>> reply.resolve(2)    # too late, ignored
        False
        >>> await reply.wait()
        1
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        """True once a value or an exception has been set."""
        return self._future.done()

    def resolve(self, value: T) -> bool:
        """Set the value. Returns False if the result was already set."""
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def fail(self, exc: BaseException) -> bool:
        """Set an exception. Returns False if the result was already set."""
        if self._future.done():
            return False
        self._future.set_exception(exc)
        return True

    async def wait(self, timeout: float | None = None) -> T:
        """
        Wait for the result.

        Raises:
            asyncio.TimeoutError: If nothing was set within `timeout`. The
                OneShot stays open so the caller can still resolve it.
        """
        # shield() keeps wait_for from cancelling the future on timeout
        return await asyncio.wait_for(asyncio.shield(self._future), timeout)


class Watchdog:
    """
    A deadline that can be pushed back while it runs.

    The single-message pipeline starts with the normal timeout and extends
    it once it learns the message is large.

    Attributes:
        timeout: Current budget in seconds, measured from creation.
    """

    def __init__(self, timeout: float) -> None:
        self._loop = asyncio.get_running_loop()
        self._started = self._loop.time()
        self.timeout = timeout

    def extend(self, timeout: float) -> None:
        """Raise the budget to `timeout` seconds (never lowers it)."""
        self.timeout = max(self.timeout, timeout)

    @property
    def remaining(self) -> float:
        """Seconds left before the watchdog fires."""
        return self._started + self.timeout - self._loop.time()

    async def watch(self, reply: OneShot[T]) -> T:
        """
        Wait for `reply` until the deadline.

        Raises:
            asyncio.TimeoutError: If the deadline passes first.
        """
        while True:
            remaining = self.remaining
            if remaining <= 0:
                raise asyncio.TimeoutError()
            try:
                return await reply.wait(remaining)
            except asyncio.TimeoutError:
                # The deadline may have been extended while we slept
                if self.remaining > 0:
                    continue
                raise
