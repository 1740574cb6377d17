"""Service container built by the composition root and shared by the routes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    import httpx

    from designpublico.config import AppConfig
    from designpublico.content.base import CatalogStore, DocumentStore
    from designpublico.core.ids import IdObfuscator
    from designpublico.core.proxy import ImageProxy
    from designpublico.core.stats import ProxyStats
    from designpublico.queue.base import AdmissionQueue


@dataclass
class Services:
    config: AppConfig
    catalog: CatalogStore
    documents: DocumentStore
    proxy: ImageProxy
    queue: AdmissionQueue
    stats: ProxyStats
    obfuscator: IdObfuscator
    http_client: httpx.AsyncClient


def get_services(request: Request) -> Services:
    return request.app.state.services
