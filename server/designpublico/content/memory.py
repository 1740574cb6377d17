"""In-memory content stores.

``MemoryCatalogStore`` backs development and tests with a small sample catalog,
and is also the read side of the Airtable store (which swaps in a freshly
synced catalog).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from designpublico.core.ids import create_slug
from designpublico.core.models import App, Document, Screen

if TYPE_CHECKING:
    from designpublico.core.models import AppFilters


class MemoryCatalogStore:
    """CatalogStore backed by plain dicts."""

    syncable = False

    def __init__(self, apps: list[App] | None = None, screens: list[Screen] | None = None) -> None:
        self._apps: dict[str, App] = {}
        self._screens: list[Screen] = []
        self.replace(apps or [], screens or [])

    def replace(self, apps: list[App], screens: list[Screen]) -> None:
        """Swap the whole catalog in one step."""
        self._apps = {app.id: app for app in apps}
        self._screens = list(screens)

    async def list_apps(self, filters: AppFilters | None = None) -> list[App]:
        apps = list(self._apps.values())
        if filters is not None:
            apps = [app for app in apps if filters.matches(app)]
        return sorted(apps, key=lambda a: a.name.casefold())

    async def get_app(self, id_or_slug: str) -> App | None:
        app = self._apps.get(id_or_slug)
        if app is not None:
            return app
        slug = create_slug(id_or_slug)
        for candidate in self._apps.values():
            if candidate.slug == slug:
                return candidate
        return None

    async def list_screens(self, app_id: str) -> list[Screen]:
        screens = [s for s in self._screens if s.app_id == app_id]
        return sorted(screens, key=lambda s: s.order)

    async def sync(self) -> None:
        return None


class MemoryDocumentStore:
    """DocumentStore backed by a dict keyed on the lower-cased title."""

    def __init__(self, documents: list[Document] | None = None) -> None:
        self._documents = {doc.title.lower(): doc for doc in documents or []}

    async def get_document(self, title: str) -> Document | None:
        return self._documents.get(title.strip().lower())


_SAMPLE_APPS = [
    ("Meu SUS Digital", "Brazil's official healthcare app that provides access to digital health cards, "
     "vaccination records, appointment scheduling, and other public health services.",
     "Federal", "Healthcare", "iOS", 15),
    ("Carteira de Trabalho Digital", "Digital employment record management for Brazilian workers, allowing "
     "them to access work history, contracts, and employment benefits.",
     "Federal", "Employment", "iOS", 12),
    ("Conecta Recife", "Municipal services platform for Recife citizens, providing access to local "
     "government services, news, and civic engagement opportunities.",
     "Municipal", "City Services", "Android", 8),
    ("Vacinas Brasil", "National vaccination management and tracking platform, allowing citizens to "
     "monitor immunization records and vaccination campaigns.",
     "Federal", "Healthcare", "iOS", 10),
    ("Gov.br", "Central platform for Brazilian government services and documents, integrating various "
     "federal services in a unified digital interface.",
     "Federal", "Government", "Cross-platform", 18),
    ("Exames SUS", "Medical examination scheduling and results tracking for the public health system, "
     "enabling citizens to manage health exams digitally.",
     "Federal", "Healthcare", "iOS", 7),
]

_SAMPLE_SCREENS = {
    "1": [
        ("Login", "Initial app login screen"),
        ("Home", "Main dashboard"),
        ("Profile", "User profile view"),
        ("Notifications", "Notification center"),
        ("Vaccination", "Vaccination records"),
        ("Health Card", "Digital health card"),
        ("Appointments", "Schedule medical appointments"),
        ("Medications", "Prescribed medications"),
        ("Hospitals", "Nearby hospitals and clinics"),
        ("Lab Results", "Laboratory test results"),
    ],
    "2": [
        ("Welcome", "App introduction screen"),
        ("Registration", "User registration"),
        ("Work History", "Employment history view"),
        ("Current Job", "Current employment details"),
        ("Benefits", "Employment benefits"),
        ("Documents", "Digital work documents"),
        ("Notifications", "System notifications"),
    ],
}


def sample_catalog() -> MemoryCatalogStore:
    """A catalog with a handful of real Brazilian public-sector apps."""
    now = datetime.now(timezone.utc)
    apps = []
    for index, (name, description, app_type, category, platform, count) in enumerate(_SAMPLE_APPS, start=1):
        apps.append(App(
            id=str(index),
            name=name,
            description=description,
            thumbnail_url=f"https://random.imagecdn.app/500/300?image={index}",
            logo=f"https://random.imagecdn.app/100/100?image={10 + index}",
            type=app_type,
            category=category,
            platform=platform,
            language="Portuguese",
            screen_count=count,
            url=None,
            slug=create_slug(name),
            source_id=f"rec{index}",
            created_at=now,
            updated_at=now,
        ))

    screens = []
    for app_id, entries in _SAMPLE_SCREENS.items():
        for order, (name, description) in enumerate(entries):
            screen_id = f"{app_id}-{order + 1}"
            screens.append(Screen(
                id=screen_id,
                app_id=app_id,
                name=name,
                description=description,
                image_url=f"https://random.imagecdn.app/400/800?image={20 + len(screens)}",
                flow="Main",
                order=order,
                source_id=f"screen{screen_id}",
                created_at=now,
                updated_at=now,
            ))
    return MemoryCatalogStore(apps, screens)


def sample_documents() -> MemoryDocumentStore:
    return MemoryDocumentStore([
        Document(
            id="terms",
            title="Termos de Uso",
            content="# Termos de Uso\n\nO DESIGN PÚBLICO é uma referência aberta de interfaces "
                    "de serviços públicos digitais.\n\n- Conteúdo para fins educacionais\n"
                    "- Marcas pertencem aos seus titulares\n",
        ),
        Document(
            id="privacy",
            title="Política de Privacidade",
            content="# Política de Privacidade\n\nNão coletamos dados pessoais além do necessário "
                    "para o funcionamento do site.\n",
        ),
        Document(
            id="about",
            title="Sobre",
            content="# Sobre\n\nUma galeria de telas de aplicativos do governo brasileiro, "
                    "para quem projeta serviços públicos digitais.\n",
        ),
    ])
