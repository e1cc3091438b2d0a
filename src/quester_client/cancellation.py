"""
Cancellation tokens for in-flight requests and stream reads.
"""
import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

from .errors import RequestCancelledError

logger = logging.getLogger(__name__)

LOG_PREFIX = "[Cancellation]"

T = TypeVar("T")


class CancellationToken:
    """
    Signal that in-flight work should stop.

    A token is cancelled at most once; the first reason wins. Callers pass a
    token through ``RequestConfig.signal`` to cancel a call themselves,
    otherwise the client creates one per call and arms a timeout on it.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.debug(f"{LOG_PREFIX} Token cancelled: {reason}")

    async def wait(self) -> None:
        await self._event.wait()


class CancellationTimer:
    """Cancel a token with reason ``timeout`` after ``timeout_ms``."""

    def __init__(self, token: CancellationToken, timeout_ms: int):
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(timeout_ms / 1000, token.cancel, "timeout")

    def disarm(self) -> None:
        self._handle.cancel()


async def run_cancellable(awaitable: Awaitable[T], token: CancellationToken, url: str) -> T:
    """
    Await ``awaitable`` unless ``token`` fires first.

    When the token wins, the pending work is cancelled and awaited before
    ``RequestCancelledError`` is raised, so nothing is left running.
    """
    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelledError(url, token.reason or "cancelled")

    task: "asyncio.Future[Any]" = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task in done:
        return task.result()
    raise RequestCancelledError(url, token.reason or "cancelled")


async def sleep_cancellable(delay: float, token: CancellationToken, url: str) -> None:
    """Sleep for ``delay`` seconds, waking early with an error if the token fires."""
    await run_cancellable(asyncio.sleep(delay), token, url)
