"""Run-scoped cancellation for opereta.

A CancellationToken is created once per run and passed explicitly to every
coroutine that may block: retry waits, SSH connection retries and remote
command waits. Cancelling the token (explicitly or when its deadline
elapses) makes each of those points raise ExecutionCancelledError.

Example:
    token = CancellationToken.with_timeout(600)
    try:
        await token.sleep(2.0)
        output = await token.wait(process.wait())
    finally:
        token.close()
"""

import asyncio
import logging
from typing import Any, Awaitable, TypeVar

from .exceptions import ExecutionCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEADLINE_EXCEEDED = "run deadline exceeded"


class CancellationToken:
    """Cancellation signal with an optional absolute deadline.

    Attributes:
        deadline: Event loop time at which the token cancels itself, if any
        reason: Why the token was cancelled (None while active)
    """

    def __init__(self, deadline: float | None = None) -> None:
        self.deadline = deadline
        self.reason: str | None = None
        self._event = asyncio.Event()
        self._timer: asyncio.TimerHandle | None = None

    @classmethod
    def with_timeout(cls, timeout: float | None) -> "CancellationToken":
        """Create a token that cancels itself after ``timeout`` seconds.

        Must be called from a running event loop. A timeout of None creates
        a token without a deadline.
        """
        if timeout is None:
            return cls()
        loop = asyncio.get_running_loop()
        token = cls(deadline=loop.time() + timeout)
        token._timer = loop.call_at(token.deadline, token.cancel, DEADLINE_EXCEEDED)
        return token

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - asyncio.get_running_loop().time())

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the token; later calls keep the first reason."""
        if self._event.is_set():
            return
        self.reason = reason
        logger.warning(f"Execution cancelled: {reason}")
        self._event.set()

    def close(self) -> None:
        """Release the deadline timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def error(self) -> ExecutionCancelledError:
        return ExecutionCancelledError(f"execution cancelled: {self.reason or 'cancelled'}")

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise self.error()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless the token is cancelled first.

        Raises:
            ExecutionCancelledError: If the token fires before the delay ends
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, delay))
        except asyncio.TimeoutError:
            return
        raise self.error()

    async def wait(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        The awaitable runs as a separate task; if the token fires first the
        task is cancelled and ExecutionCancelledError is raised.
        """
        self.raise_if_cancelled()
        work: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
        if work in done:
            return work.result()
        await asyncio.gather(work, return_exceptions=True)
        raise self.error()
