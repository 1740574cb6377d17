"""Health check and monitoring endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from designpublico.services import Services, get_services

router = APIRouter(prefix="/api")

VERSION = "0.1.0"


@router.get("/health")
async def health(services: Services = Depends(get_services)) -> dict:
    """Basic health check."""
    config = services.config
    return {
        "status": "ok",
        "version": VERSION,
        "uptime_seconds": services.stats.uptime_seconds(),
        "catalog_backend": config.content.catalog_backend,
        "documents_backend": config.content.documents_backend,
        "cloudinary_configured": config.cloudinary.configured,
        "queue_active": services.queue.active,
        "queue_waiting": services.queue.waiting,
    }


@router.get("/stats")
async def stats(services: Services = Depends(get_services)) -> dict:
    """Image proxy counters plus the live state of the admission queue.

    ``queue.active`` counts slots currently handed out (at most
    ``queue.max_concurrent``); ``queue.waiting`` is the FIFO backlog.
    """
    snapshot = services.stats.snapshot()
    snapshot["queue"] = {
        "active": services.queue.active,
        "waiting": services.queue.waiting,
        "max_concurrent": services.config.queue.max_concurrent,
        "release_delay_ms": services.config.queue.release_delay_ms,
    }
    return snapshot
