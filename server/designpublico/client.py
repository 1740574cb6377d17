"""Async client for the DESIGN PÚBLICO content API.

List fetches degrade to an empty list so a page can still render; single
fetches raise ``ContentFetchError`` because the caller has nothing to show.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any

import httpx
import structlog

from designpublico.core.models import App, Document, Screen

log = structlog.get_logger()

DEFAULT_TIMEOUT = 10.0


class ContentFetchError(Exception):
    """A content request failed, timed out or returned an unusable payload."""


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def app_from_json(data: dict) -> App:
    return App(
        id=str(data["id"]),
        name=data["name"],
        description=data.get("description") or "",
        thumbnail_url=data.get("thumbnailUrl") or "",
        type=data.get("type") or "",
        category=data.get("category") or "",
        platform=data.get("platform") or "",
        slug=data.get("slug") or "",
        source_id=data.get("airtableId") or "",
        logo=data.get("logo"),
        language=data.get("language"),
        screen_count=int(data.get("screenCount") or 0),
        url=data.get("url"),
        created_at=_parse_datetime(data.get("createdAt")),
        updated_at=_parse_datetime(data.get("updatedAt")),
    )


def screen_from_json(data: dict) -> Screen:
    return Screen(
        id=str(data["id"]),
        app_id=str(data["appId"]),
        name=data.get("name") or "",
        image_url=data.get("imageUrl") or "",
        source_id=data.get("airtableId") or "",
        description=data.get("description"),
        flow=data.get("flow"),
        order=int(data.get("order") or 0),
        created_at=_parse_datetime(data.get("createdAt")),
        updated_at=_parse_datetime(data.get("updatedAt")),
    )


def document_from_json(data: dict) -> Document:
    return Document(
        id=str(data["id"]),
        title=data["title"],
        content=data.get("content") or "",
        status=data.get("status") or "published",
    )


class DesignPublicoClient:
    """Thin wrapper around ``httpx.AsyncClient`` for the read-only API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> DesignPublicoClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        query = {k: v for k, v in (params or {}).items() if v}
        query["_t"] = str(int(time.time() * 1000))
        try:
            return await asyncio.wait_for(self._fetch(path, query), self._timeout)
        except asyncio.TimeoutError as exc:
            raise ContentFetchError(f"GET {path} timed out after {self._timeout}s") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ContentFetchError(f"GET {path} failed: {exc}") from exc

    async def _fetch(self, path: str, query: dict[str, str]) -> Any:
        # httpx timeouts apply per read; the deadline covers the whole exchange.
        response = await self._http.get(path, params=query)
        response.raise_for_status()
        return response.json()

    async def fetch_apps(
        self,
        type: str | None = None,
        platform: str | None = None,
        category: str | None = None,
        search: str | None = None,
    ) -> list[App]:
        params = {"type": type, "platform": platform, "category": category, "search": search}
        try:
            payload = await self._get_json("/api/apps", params)
            apps = [app_from_json(item) for item in payload]
        except (ContentFetchError, KeyError, TypeError, ValueError) as exc:
            log.warning("fetch_apps_failed", error=str(exc))
            return []
        return sorted(apps, key=lambda a: a.name.casefold())

    async def fetch_app(self, id_or_slug: str) -> App:
        payload = await self._get_json(f"/api/apps/{id_or_slug}")
        try:
            return app_from_json(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise ContentFetchError(f"Malformed app payload for {id_or_slug}") from exc

    async def fetch_screens(self, app_id: str) -> list[Screen]:
        try:
            payload = await self._get_json(f"/api/apps/{app_id}/screens")
            screens = [screen_from_json(item) for item in payload]
        except (ContentFetchError, KeyError, TypeError, ValueError) as exc:
            log.warning("fetch_screens_failed", app_id=app_id, error=str(exc))
            return []
        return sorted(screens, key=lambda s: s.order)

    async def fetch_document(self, title: str) -> Document:
        payload = await self._get_json(f"/api/docs/{title}")
        try:
            return document_from_json(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise ContentFetchError(f"Malformed document payload for {title}") from exc
