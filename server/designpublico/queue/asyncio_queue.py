"""In-process asyncio implementation of AdmissionQueue."""

from __future__ import annotations

import asyncio
from collections import deque


class AsyncioAdmissionQueue:
    """Bounded-concurrency FIFO queue for the single event-loop thread.

    ``acquire`` takes a slot immediately while fewer than ``max_concurrent``
    are active, otherwise it parks the caller behind earlier waiters.
    ``release`` hands the slot straight to the oldest waiter (after
    ``release_delay`` seconds, to smooth bursts) or frees it when nobody is
    waiting. State is only touched between suspension points, so no lock.
    """

    def __init__(self, max_concurrent: int = 5, release_delay: float = 0.05) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if release_delay < 0:
            raise ValueError("release_delay must not be negative")
        self._max_concurrent = max_concurrent
        self._release_delay = release_delay
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def acquire(self) -> None:
        if self._active < self._max_concurrent:
            self._active += 1
            return

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if fut in self._waiters:
                # Still queued: just drop out of line.
                self._waiters.remove(fut)
            else:
                # The slot was already handed to us; pass it on.
                self.release()
            raise

    def release(self) -> None:
        if self._waiters:
            fut = self._waiters.popleft()
            if self._release_delay > 0:
                asyncio.get_running_loop().call_later(self._release_delay, self._wake, fut)
            else:
                self._wake(fut)
        else:
            self._active -= 1

    @staticmethod
    def _wake(fut: asyncio.Future[None]) -> None:
        if not fut.done():
            fut.set_result(None)
