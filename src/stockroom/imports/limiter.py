"""Bounded-parallelism gate for asynchronous work."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, TypeVar

T = TypeVar("T")


class ConcurrencyLimiter:
    """Run at most ``max_concurrent`` submitted tasks at once, queueing the rest FIFO.

    A slot freed by a finishing task (successful or not) is handed directly to the oldest
    queued task, so later submissions can never overtake earlier ones. There is no priority,
    cancellation or timeout support; callers that need those wrap the submitted task.
    """

    def __init__(self, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise ValueError("Concurrency limiter requires at least one slot.")
        self._max_concurrent = max_concurrent
        self._active = 0
        self._waiters: Deque[asyncio.Future[None]] = deque()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def pending_count(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def run(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task`` once a slot is free and return its result or raise its error."""

        await self._acquire()
        try:
            return await task()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._active < self._max_concurrent and not self._waiters:
            self._active += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was already handed over; pass it on.
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active = max(0, self._active - 1)


__all__ = ["ConcurrencyLimiter"]
