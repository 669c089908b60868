from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from .errors import GenerationAbortedError

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation signal shared by every suspension point of a call.

    Cancellation takes effect at the next checkpoint: before a network call,
    while waiting between polls, or by abandoning an in-flight request that is
    being raced with :meth:`race`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise GenerationAbortedError(stage)

    async def sleep(self, delay: float, stage: str) -> None:
        """Wait ``delay`` seconds unless cancelled first.

        Raises:
            GenerationAbortedError: If the token is cancelled before or during the wait.
        """
        self.raise_if_cancelled(stage)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise GenerationAbortedError(stage)

    async def race(self, awaitable: Awaitable[T], stage: str) -> T:
        """Await ``awaitable``, abandoning it if the token is cancelled meanwhile."""
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise GenerationAbortedError(stage)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise GenerationAbortedError(stage)
