"""Airtable-backed catalog.

Pulls the ``apps`` and ``screens`` tables through the Airtable REST API,
validates every record into a typed row, and rebuilds the in-memory catalog.
Malformed records are logged and skipped rather than passed through.

Reads are served from memory; ``sync`` replaces the catalog only once the
whole import has succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from designpublico.content.memory import MemoryCatalogStore
from designpublico.core.ids import IdObfuscator, create_slug
from designpublico.core.models import App, Screen
from designpublico.errors import UpstreamUnavailableError

log = structlog.get_logger()

AIRTABLE_API = "https://api.airtable.com/v0"
PAGE_SIZE = 100

# Airtable bases drifted over time; each field is looked up under several names.
_APP_REF_FIELDS = ("app", "app-name", "appname")
_ATTACHMENT_FIELDS = ("images", "image", "attachment")
_SCREEN_TITLE_FIELDS = ("title", "name", "screen-name", "screen_name")

_INTRO_KEYWORDS = ("splash", "início", "login", "welcome", "intro", "start", "abertura")
_INTRO_ORDER_BASE = -1000

_DEFAULT_TYPE = "Federal"
_DEFAULT_CATEGORY = "Government"
_DEFAULT_PLATFORM = "iOS"
_PLACEHOLDER_THUMBNAIL = "https://via.placeholder.com/500x300"


class MalformedRecordError(ValueError):
    """An Airtable record is missing something we cannot default."""


def _first(fields: dict, names: tuple[str, ...]) -> Any:
    for name in names:
        value = fields.get(name)
        if value:
            return value
    return None


def _first_attachment_url(value: Any) -> str | None:
    if isinstance(value, list) and value and isinstance(value[0], dict):
        url = value[0].get("url")
        if isinstance(url, str) and url:
            return url
    return None


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _fields_of(record: Any) -> tuple[str, dict]:
    if not isinstance(record, dict):
        raise MalformedRecordError("record is not an object")
    record_id = record.get("id")
    fields = record.get("fields")
    if not isinstance(record_id, str) or not record_id:
        raise MalformedRecordError("record has no id")
    if not isinstance(fields, dict):
        raise MalformedRecordError("record has no fields")
    return record_id, fields


@dataclass(frozen=True)
class AirtableAppRecord:
    record_id: str
    name: str
    description: str | None
    logo_url: str | None
    type: str | None
    category: str | None
    platform: str | None
    language: str | None
    url: str | None

    @classmethod
    def from_record(cls, record: Any) -> AirtableAppRecord:
        record_id, fields = _fields_of(record)
        name = _optional_str(fields.get("name"))
        if name is None:
            raise MalformedRecordError("app record has no name")
        return cls(
            record_id=record_id,
            name=name,
            description=_optional_str(fields.get("description")),
            logo_url=_first_attachment_url(fields.get("logo")),
            type=_optional_str(fields.get("type")),
            category=_optional_str(fields.get("category")),
            platform=_optional_str(fields.get("platform")),
            language=_optional_str(fields.get("language")),
            url=_optional_str(fields.get("url")),
        )


@dataclass(frozen=True)
class AirtableScreenRecord:
    record_id: str
    app_ref: str  # linked app record id, or a free-text app name
    title: str | None
    image_url: str
    description: str | None
    flow: str | None

    @classmethod
    def from_record(cls, record: Any) -> AirtableScreenRecord:
        record_id, fields = _fields_of(record)

        ref = _first(fields, _APP_REF_FIELDS)
        if isinstance(ref, list) and ref:
            ref = ref[0]
        if isinstance(ref, dict):
            ref = ref.get("id") or ref.get("name")
        if not isinstance(ref, str) or not ref.strip():
            raise MalformedRecordError("screen record has no app reference")

        image_url = _first_attachment_url(_first(fields, _ATTACHMENT_FIELDS))
        if image_url is None:
            raise MalformedRecordError("screen record has no image attachment")

        title = _first(fields, _SCREEN_TITLE_FIELDS)
        return cls(
            record_id=record_id,
            app_ref=ref.strip(),
            title=_optional_str(title),
            image_url=image_url,
            description=_optional_str(fields.get("description")),
            flow=_optional_str(fields.get("flow")),
        )


def _is_intro_screen(name: str) -> bool:
    lowered = name.lower()
    return any(keyword in lowered for keyword in _INTRO_KEYWORDS)


class AirtableCatalogStore(MemoryCatalogStore):
    """CatalogStore synced from an Airtable base."""

    syncable = True

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_id: str,
        obfuscator: IdObfuscator,
        apps_table: str = "apps",
        screens_table: str = "screens",
    ) -> None:
        super().__init__()
        self._client = http_client
        self._api_key = api_key
        self._base_id = base_id
        self._obfuscator = obfuscator
        self._apps_table = apps_table
        self._screens_table = screens_table
        self.last_synced_at: datetime | None = None

    async def _fetch_table(self, table: str) -> list[dict]:
        """Fetch every record of a table, following the ``offset`` cursor."""
        url = f"{AIRTABLE_API}/{self._base_id}/{table}"
        headers = {"Authorization": f"Bearer {self._api_key}"}
        records: list[dict] = []
        offset: str | None = None

        while True:
            params: dict[str, Any] = {"pageSize": PAGE_SIZE}
            if offset:
                params["offset"] = offset
            try:
                response = await self._client.get(url, params=params, headers=headers)
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise UpstreamUnavailableError(f"Airtable request for '{table}' failed: {exc}") from exc

            batch = payload.get("records") or []
            records.extend(batch)
            log.debug("airtable_page_fetched", table=table, count=len(batch))
            offset = payload.get("offset")
            if not offset:
                return records

    def build_catalog(self, app_rows: list[dict], screen_rows: list[dict]) -> tuple[list[App], list[Screen]]:
        """Turn raw Airtable rows into App and Screen records."""
        now = datetime.now(timezone.utc)

        app_records: dict[str, AirtableAppRecord] = {}
        record_by_name: dict[str, str] = {}
        for row in app_rows:
            try:
                rec = AirtableAppRecord.from_record(row)
            except MalformedRecordError as exc:
                log.warning("airtable_record_skipped", table=self._apps_table,
                            record_id=row.get("id") if isinstance(row, dict) else None,
                            reason=str(exc))
                continue
            app_records[rec.record_id] = rec
            record_by_name[rec.name.lower()] = rec.record_id

        # Group screens under the app they reference, keeping Airtable order.
        groups: dict[str, list[AirtableScreenRecord]] = {}
        for row in screen_rows:
            try:
                screen = AirtableScreenRecord.from_record(row)
            except MalformedRecordError as exc:
                log.warning("airtable_record_skipped", table=self._screens_table,
                            record_id=row.get("id") if isinstance(row, dict) else None,
                            reason=str(exc))
                continue
            if screen.app_ref in app_records:
                key = screen.app_ref
            else:
                key = record_by_name.get(screen.app_ref.lower(), screen.app_ref)
            groups.setdefault(key, []).append(screen)

        apps: list[App] = []
        screens: list[Screen] = []
        for key, records in groups.items():
            meta = app_records.get(key)
            name = meta.name if meta else key
            source_id = meta.record_id if meta else records[0].record_id
            app_id = self._obfuscator.obfuscate(source_id)

            apps.append(App(
                id=app_id,
                name=name,
                description=(meta.description if meta else None)
                or f"Collection of design screens from {name}",
                thumbnail_url=records[0].image_url or _PLACEHOLDER_THUMBNAIL,
                logo=meta.logo_url if meta else None,
                type=(meta.type if meta else None) or _DEFAULT_TYPE,
                category=(meta.category if meta else None) or _DEFAULT_CATEGORY,
                platform=(meta.platform if meta else None) or _DEFAULT_PLATFORM,
                language=meta.language if meta else None,
                screen_count=len(records),
                url=meta.url if meta else None,
                slug=create_slug(name) or app_id,
                source_id=source_id,
                created_at=now,
                updated_at=now,
            ))

            for index, rec in enumerate(records):
                screen_name = rec.title or f"Screen {index + 1}"
                order = index
                # Splash/login screens among the first three always lead.
                if index < 3 and _is_intro_screen(screen_name):
                    order = _INTRO_ORDER_BASE + index
                screens.append(Screen(
                    id=self._obfuscator.obfuscate(rec.record_id),
                    app_id=app_id,
                    name=screen_name,
                    description=rec.description,
                    image_url=rec.image_url,
                    flow=rec.flow,
                    order=order,
                    source_id=rec.record_id,
                    created_at=now,
                    updated_at=now,
                ))

        return apps, screens

    async def sync(self) -> None:
        log.info("airtable_sync_started", base_id=self._base_id)
        app_rows = await self._fetch_table(self._apps_table)
        screen_rows = await self._fetch_table(self._screens_table)
        apps, screens = self.build_catalog(app_rows, screen_rows)
        self.replace(apps, screens)
        self.last_synced_at = datetime.now(timezone.utc)
        log.info("airtable_sync_completed", apps=len(apps), screens=len(screens))
