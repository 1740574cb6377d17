"""Content store interfaces (ports) for the catalog and documents."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from designpublico.core.models import App, AppFilters, Document, Screen


class CatalogStore(Protocol):
    """Port: read access to apps and their screens."""

    syncable: bool

    async def list_apps(self, filters: AppFilters | None = None) -> list[App]: ...

    async def get_app(self, id_or_slug: str) -> App | None: ...

    async def list_screens(self, app_id: str) -> list[Screen]: ...

    async def sync(self) -> None: ...


class DocumentStore(Protocol):
    """Port: Markdown documents (terms, privacy policy, about page)."""

    async def get_document(self, title: str) -> Document | None: ...
