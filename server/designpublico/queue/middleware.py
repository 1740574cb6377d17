"""ASGI middleware that puts image-proxy requests behind the admission queue."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send

    from designpublico.core.stats import ProxyStats
    from designpublico.queue.base import AdmissionQueue


class ImageAdmissionMiddleware:
    """Gate requests under ``path_prefix``; every other request passes straight through.

    The slot is held until the downstream app has finished sending the
    response, and is released exactly once whether that ends in success, an
    exception, or the client going away (task cancellation).
    """

    def __init__(
        self,
        app: ASGIApp,
        queue: AdmissionQueue,
        path_prefix: str = "/proxy-image/",
        stats: ProxyStats | None = None,
    ) -> None:
        self.app = app
        self.queue = queue
        self.path_prefix = path_prefix
        self.stats = stats

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope["path"].startswith(self.path_prefix):
            await self.app(scope, receive, send)
            return

        await self.queue.acquire()
        if self.stats is not None:
            self.stats.record_queue_depth(self.queue.waiting)
        try:
            await self.app(scope, receive, send)
        finally:
            self.queue.release()
