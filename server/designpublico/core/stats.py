"""Server statistics for the image proxy and admission queue.

Plain in-memory counters guarded by a lock. No framework dependencies.
"""

from __future__ import annotations

import threading
import time


class ProxyStats:
    """Thread-safe counters describing image proxy traffic.

    ``record_queue_depth`` is fed by the admission middleware every time a
    request is admitted, so ``queue_max_waiting_ever`` shows the worst backlog
    seen since startup.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()

        self.requests: int = 0
        self.not_modified: int = 0
        self.transformed: int = 0
        self.passthrough: int = 0
        self.errors: int = 0
        self.bytes_fetched: int = 0
        self.bytes_served: int = 0
        self.queue_waiting: int = 0
        self.queue_max_waiting: int = 0
        self.formats: dict[str, int] = {}

    def record_request(self) -> None:
        with self._lock:
            self.requests += 1

    def record_not_modified(self) -> None:
        with self._lock:
            self.not_modified += 1

    def record_served(self, fmt: str, fetched_bytes: int, served_bytes: int, *,
                      transformed: bool) -> None:
        with self._lock:
            if transformed:
                self.transformed += 1
            else:
                self.passthrough += 1
            self.bytes_fetched += fetched_bytes
            self.bytes_served += served_bytes
            self.formats[fmt] = self.formats.get(fmt, 0) + 1

    def record_error(self) -> None:
        with self._lock:
            self.errors += 1

    def record_queue_depth(self, waiting: int) -> None:
        with self._lock:
            self.queue_waiting = waiting
            if waiting > self.queue_max_waiting:
                self.queue_max_waiting = waiting

    def uptime_seconds(self) -> float:
        return round(time.time() - self._started_at, 1)

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            return {
                "uptime_seconds": self.uptime_seconds(),
                "requests": self.requests,
                "not_modified": self.not_modified,
                "transformed": self.transformed,
                "passthrough": self.passthrough,
                "errors": self.errors,
                "bytes_fetched": self.bytes_fetched,
                "bytes_served": self.bytes_served,
                "formats": dict(self.formats),
                "queue_waiting": self.queue_waiting,
                "queue_max_waiting_ever": self.queue_max_waiting,
            }
