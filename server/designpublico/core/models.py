"""DESIGN PÚBLICO server: core internal data models.

These are plain dataclasses with no framework dependencies.
Content store records are converted to these at the boundary; ``to_json``
produces the camelCase shape the website front end consumes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class App:
    id: str
    name: str
    description: str
    thumbnail_url: str
    type: str
    category: str
    platform: str
    slug: str
    source_id: str
    logo: str | None = None
    language: str | None = None
    screen_count: int = 0
    url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "thumbnailUrl": self.thumbnail_url,
            "logo": self.logo,
            "type": self.type,
            "category": self.category,
            "platform": self.platform,
            "language": self.language,
            "screenCount": self.screen_count,
            "url": self.url,
            "slug": self.slug,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class Screen:
    id: str
    app_id: str
    name: str
    image_url: str
    source_id: str
    description: str | None = None
    flow: str | None = None
    order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "appId": self.app_id,
            "name": self.name,
            "description": self.description,
            "imageUrl": self.image_url,
            "flow": self.flow,
            "order": self.order,
            "airtableId": self.source_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class Document:
    id: str
    title: str
    content: str  # Markdown
    status: str = "published"

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "status": self.status,
        }


@dataclass(frozen=True)
class AppFilters:
    type: str | None = None
    platform: str | None = None
    category: str | None = None
    search: str | None = None

    def matches(self, app: App) -> bool:
        if self.type and app.type.lower() != self.type.lower():
            return False
        if self.platform and app.platform.lower() != self.platform.lower():
            return False
        if self.category and app.category.lower() != self.category.lower():
            return False
        if self.search:
            needle = self.search.lower()
            haystacks = (app.name, app.description, app.category)
            if not any(needle in h.lower() for h in haystacks):
                return False
        return True


@dataclass(frozen=True)
class ImageTransformRequest:
    """Transform parameters as sent by the client, before resolution."""
    path: str
    width: int | None = None
    height: int | None = None
    format: str | None = None
    quality: int = 80

    @property
    def has_transform_params(self) -> bool:
        return self.width is not None or self.height is not None or self.format is not None


@dataclass(frozen=True)
class ResolvedTransform:
    """Effective parameters after width clamping and format negotiation."""
    path: str
    width: int | None
    height: int | None
    format: str  # "avif", "webp", "jpeg", "png" or "original"
    quality: int

    @property
    def needs_processing(self) -> bool:
        return self.width is not None or self.height is not None or self.format != "original"
