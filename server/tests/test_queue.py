"""Tests for the admission queue and its ASGI middleware."""

from __future__ import annotations

import asyncio

import pytest

from designpublico.core.stats import ProxyStats
from designpublico.queue.asyncio_queue import AsyncioAdmissionQueue
from designpublico.queue.middleware import ImageAdmissionMiddleware


def test_rejects_bad_settings():
    with pytest.raises(ValueError):
        AsyncioAdmissionQueue(max_concurrent=0)
    with pytest.raises(ValueError):
        AsyncioAdmissionQueue(release_delay=-1)


@pytest.mark.asyncio
async def test_acquire_is_immediate_below_limit():
    queue = AsyncioAdmissionQueue(max_concurrent=2, release_delay=0)
    await queue.acquire()
    await queue.acquire()
    assert queue.active == 2
    assert queue.waiting == 0

    queue.release()
    queue.release()
    assert queue.active == 0


@pytest.mark.asyncio
async def test_waiters_are_admitted_in_fifo_order():
    queue = AsyncioAdmissionQueue(max_concurrent=1, release_delay=0)
    await queue.acquire()
    order = []

    async def worker(i):
        await queue.acquire()
        order.append(i)
        queue.release()

    tasks = []
    for i in range(4):
        tasks.append(asyncio.create_task(worker(i)))
        await asyncio.sleep(0)
    assert queue.waiting == 4

    queue.release()
    await asyncio.gather(*tasks)
    assert order == [0, 1, 2, 3]
    assert queue.active == 0


@pytest.mark.asyncio
async def test_never_more_than_max_concurrent():
    queue = AsyncioAdmissionQueue(max_concurrent=3, release_delay=0)
    current = 0
    peak = 0

    async def worker():
        nonlocal current, peak
        await queue.acquire()
        try:
            current += 1
            peak = max(peak, current)
            await asyncio.sleep(0.01)
            current -= 1
        finally:
            queue.release()

    await asyncio.gather(*(worker() for _ in range(10)))
    assert peak == 3
    assert queue.active == 0
    assert queue.waiting == 0


@pytest.mark.asyncio
async def test_release_delay_postpones_handoff():
    queue = AsyncioAdmissionQueue(max_concurrent=1, release_delay=0.05)
    loop = asyncio.get_running_loop()
    await queue.acquire()

    waiter = asyncio.create_task(queue.acquire())
    await asyncio.sleep(0)
    started = loop.time()
    queue.release()
    # The slot moves to the waiter; it is never free in between.
    assert queue.active == 1

    await waiter
    assert loop.time() - started >= 0.04
    queue.release()
    assert queue.active == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_the_queue():
    queue = AsyncioAdmissionQueue(max_concurrent=1, release_delay=0)
    await queue.acquire()

    waiter = asyncio.create_task(queue.acquire())
    await asyncio.sleep(0)
    assert queue.waiting == 1

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert queue.waiting == 0

    queue.release()
    assert queue.active == 0


@pytest.mark.asyncio
async def test_cancel_after_handoff_passes_slot_on():
    queue = AsyncioAdmissionQueue(max_concurrent=1, release_delay=0.05)
    await queue.acquire()

    waiter = asyncio.create_task(queue.acquire())
    await asyncio.sleep(0)
    queue.release()  # slot is now promised to the waiter
    assert queue.waiting == 0

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    await asyncio.sleep(0.08)
    assert queue.active == 0


async def _receive():
    return {"type": "http.request", "body": b"", "more_body": False}


async def _send(message):
    return None


def _scope(path: str) -> dict:
    return {"type": "http", "path": path, "method": "GET", "headers": []}


class RecordingQueue:
    def __init__(self):
        self.acquired = 0
        self.released = 0
        self.active = 0
        self.waiting = 0

    async def acquire(self):
        self.acquired += 1

    def release(self):
        self.released += 1


@pytest.mark.asyncio
async def test_middleware_bypasses_other_paths():
    queue = RecordingQueue()
    calls = []

    async def app(scope, receive, send):
        calls.append(scope["type"])

    middleware = ImageAdmissionMiddleware(app, queue)
    await middleware(_scope("/api/apps"), _receive, _send)
    await middleware({"type": "lifespan"}, _receive, _send)

    assert calls == ["http", "lifespan"]
    assert queue.acquired == 0
    assert queue.released == 0


@pytest.mark.asyncio
async def test_middleware_gates_and_releases():
    queue = RecordingQueue()
    stats = ProxyStats()

    async def app(scope, receive, send):
        assert queue.acquired == 1
        assert queue.released == 0

    middleware = ImageAdmissionMiddleware(app, queue, stats=stats)
    await middleware(_scope("/proxy-image/v3/a.png"), _receive, _send)
    assert queue.acquired == 1
    assert queue.released == 1


@pytest.mark.asyncio
async def test_middleware_releases_on_error():
    queue = AsyncioAdmissionQueue(max_concurrent=1, release_delay=0)

    async def app(scope, receive, send):
        raise RuntimeError("boom")

    middleware = ImageAdmissionMiddleware(app, queue)
    with pytest.raises(RuntimeError):
        await middleware(_scope("/proxy-image/v3/a.png"), _receive, _send)
    assert queue.active == 0


@pytest.mark.asyncio
async def test_middleware_releases_on_cancellation():
    queue = AsyncioAdmissionQueue(max_concurrent=1, release_delay=0)
    entered = asyncio.Event()

    async def app(scope, receive, send):
        entered.set()
        await asyncio.sleep(10)

    middleware = ImageAdmissionMiddleware(app, queue)
    task = asyncio.create_task(middleware(_scope("/proxy-image/v3/a.png"), _receive, _send))
    await entered.wait()
    assert queue.active == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert queue.active == 0
