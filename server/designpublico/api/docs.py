"""Document endpoint (terms of use, privacy policy, ...).

Content is Markdown; the front end renders and sanitizes it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from designpublico.errors import BadRequestError, NotFoundError
from designpublico.services import Services, get_services

router = APIRouter(prefix="/api")

# Short names the footer links use.
DOCUMENT_ALIASES = {
    "terms": "Termos de Uso",
    "privacy": "Política de Privacidade",
    "about": "Sobre",
}


@router.get("/docs/{title}")
async def get_document(title: str, services: Services = Depends(get_services)) -> dict:
    title = title.strip()
    if not title:
        raise BadRequestError("Document title is required")

    lookup = DOCUMENT_ALIASES.get(title.lower(), title)
    document = await services.documents.get_document(lookup)
    if document is None:
        raise NotFoundError(f"{lookup} document not found")
    return document.to_json()
