"""Catalog API endpoints: apps, their screens, and catalog sync.

List endpoints degrade to an empty array when the content store fails, so the
gallery pages render an empty state instead of an error. Single-entity reads
propagate the failure.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from designpublico.core.models import AppFilters
from designpublico.errors import BadRequestError, NotFoundError
from designpublico.services import Services, get_services

log = structlog.get_logger()

router = APIRouter(prefix="/api")


@router.get("/apps")
async def list_apps(
    type: str | None = None,
    platform: str | None = None,
    category: str | None = None,
    search: str | None = None,
    services: Services = Depends(get_services),
) -> list[dict]:
    """All apps matching the filters, sorted by name."""
    filters = AppFilters(type=type, platform=platform, category=category, search=search)
    try:
        apps = await services.catalog.list_apps(filters)
    except Exception:
        log.error("apps_fetch_failed", exc_info=True)
        return []
    return [app.to_json() for app in apps]


@router.get("/apps/{id_or_slug}")
async def get_app(id_or_slug: str, services: Services = Depends(get_services)) -> dict:
    app = await services.catalog.get_app(id_or_slug)
    if app is None:
        raise NotFoundError("App not found")
    return app.to_json()


@router.get("/apps/{id_or_slug}/screens")
async def list_screens(id_or_slug: str, services: Services = Depends(get_services)) -> list[dict]:
    """Screens of one app, sorted by ``order``."""
    try:
        app = await services.catalog.get_app(id_or_slug)
    except Exception:
        log.error("screens_fetch_failed", app=id_or_slug, exc_info=True)
        return []
    if app is None:
        raise NotFoundError("App not found")

    try:
        screens = await services.catalog.list_screens(app.id)
    except Exception:
        log.error("screens_fetch_failed", app=app.id, exc_info=True)
        return []
    return [screen.to_json() for screen in screens]


@router.post("/sync")
async def sync_catalog(services: Services = Depends(get_services)) -> dict:
    if not services.catalog.syncable:
        raise BadRequestError("Catalog backend is not configured for sync")
    await services.catalog.sync()
    return {"message": "Sync completed successfully"}
