"""Bounded concurrency gate — caps in-flight provider calls with a FIFO wait queue of limited depth."""

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager

from meetingpoint.errors import QueueFullError

logger = logging.getLogger(__name__)


class BoundedConcurrencyGate:
    """At most ``max_concurrent`` holders; up to ``max_queued`` callers wait in order, the rest are rejected.

    Usage::

        async with gate.acquire():
            await provider_call()
    """

    def __init__(self, max_concurrent: int = 10, max_queued: int = 20):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if max_queued < 0:
            raise ValueError("max_queued must not be negative")
        self.max_concurrent = max_concurrent
        self.max_queued = max_queued
        self._in_flight = 0
        self._waiters: deque[asyncio.Future] = deque()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def queued(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    @asynccontextmanager
    async def acquire(self):
        await self._acquire()
        try:
            yield
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._in_flight < self.max_concurrent and not self.queued:
            self._in_flight += 1
            return

        if self.queued >= self.max_queued:
            logger.warning(
                f"Concurrency gate full: {self._in_flight} in flight, {self.queued} queued"
            )
            raise QueueFullError(self.max_concurrent, self.max_queued)

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            # The releasing holder hands its permit over by resolving the future
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                self._release()
            raise
        finally:
            try:
                self._waiters.remove(waiter)
            except ValueError:
                pass

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._in_flight -= 1
