"""Queue interface (port) for image-proxy admission control."""

from __future__ import annotations

from typing import Protocol


class AdmissionQueue(Protocol):
    """Port: hands out a bounded number of processing slots, FIFO."""

    async def acquire(self) -> None: ...

    def release(self) -> None: ...

    @property
    def active(self) -> int: ...

    @property
    def waiting(self) -> int: ...
