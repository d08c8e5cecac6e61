"""Bounded-concurrency admission for upstream inference calls."""

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrencyGate:
    """Counting gate with a FIFO wait-list.

    At most ``max_concurrency`` callers hold a slot at once. A released slot is
    handed directly to the longest-waiting caller, so no later arrival can take
    it first. Waiters have no timeout: a holder that never finishes starves the
    queue.
    """

    def __init__(self, max_concurrency: int = 4) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer")
        self._max = max_concurrency
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def max_concurrency(self) -> int:
        """Configured number of slots."""
        return self._max

    @property
    def active(self) -> int:
        """Number of slots currently held."""
        return self._active

    @property
    def queued(self) -> int:
        """Number of callers waiting for a slot."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        """Take a slot, waiting in FIFO order when all slots are held."""
        if self._active < self._max and not self._waiters:
            self._active += 1
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was already handed over; pass it on.
                self.release()
            else:
                self._remove_waiter(waiter)
            raise

    def release(self) -> None:
        """Return a slot, transferring it to the next waiter if any."""
        if self._active <= 0:
            raise RuntimeError("release() called without a held slot")
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Hand-off keeps the active count unchanged.
                waiter.set_result(None)
                return
        self._active -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold a slot for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def run(self, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` while holding a slot, releasing it on any outcome."""
        async with self.slot():
            _logger.debug(
                "Gate slot acquired: active=%s max=%s queued=%s",
                self._active,
                self._max,
                self.queued,
            )
            return await work()

    def _remove_waiter(self, waiter: "asyncio.Future[None]") -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
