"""DESIGN PÚBLICO server: main entry point.

This is the only file that knows about concrete implementations.
It wires together the content stores, image proxy, admission queue and API
layers, and hands them to the routes through ``app.state.services``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from designpublico.api import images
from designpublico.api.apps import router as apps_router
from designpublico.api.docs import router as docs_router
from designpublico.api.monitoring import VERSION, router as monitoring_router
from designpublico.api.seo import router as seo_router
from designpublico.config import AppConfig, load_config
from designpublico.content.airtable import AirtableCatalogStore
from designpublico.content.base import CatalogStore, DocumentStore
from designpublico.content.memory import sample_catalog, sample_documents
from designpublico.content.notion import NotionDocumentStore
from designpublico.core.ids import IdObfuscator
from designpublico.core.proxy import ImageProxy
from designpublico.core.stats import ProxyStats
from designpublico.errors import DesignPublicoError
from designpublico.queue.asyncio_queue import AsyncioAdmissionQueue
from designpublico.queue.middleware import ImageAdmissionMiddleware
from designpublico.services import Services

log = structlog.get_logger()


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


def _build_catalog(config: AppConfig, http_client: httpx.AsyncClient,
                   obfuscator: IdObfuscator) -> CatalogStore:
    backend = config.content.catalog_backend
    if backend == "airtable":
        if config.content.airtable_api_key and config.content.airtable_base_id:
            return AirtableCatalogStore(
                http_client,
                api_key=config.content.airtable_api_key,
                base_id=config.content.airtable_base_id,
                obfuscator=obfuscator,
            )
        log.warning("airtable_not_configured", fallback="memory")
        return sample_catalog()
    if backend == "memory":
        return sample_catalog()
    raise ValueError(f"Unknown catalog backend: {backend}")


def _build_documents(config: AppConfig, http_client: httpx.AsyncClient) -> DocumentStore:
    backend = config.content.documents_backend
    if backend == "notion":
        if config.content.notion_secret and config.content.notion_page_url:
            return NotionDocumentStore(
                http_client,
                secret=config.content.notion_secret,
                page_url=config.content.notion_page_url,
            )
        log.warning("notion_not_configured", fallback="memory")
        return sample_documents()
    if backend == "memory":
        return sample_documents()
    raise ValueError(f"Unknown documents backend: {backend}")


async def _handle_app_error(request: Request, exc: DesignPublicoError) -> JSONResponse:
    level = log.error if exc.status_code >= 500 else log.info
    level("request_failed", path=request.url.path, code=exc.code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    services: Services = app.state.services
    config = services.config

    log.info("server_starting",
             env=config.server.env,
             catalog_backend=config.content.catalog_backend,
             documents_backend=config.content.documents_backend,
             queue_max_concurrent=config.queue.max_concurrent)

    if services.catalog.syncable and config.content.sync_on_startup:
        try:
            await services.catalog.sync()
        except DesignPublicoError:
            # Serve an empty catalog rather than refusing to start.
            log.error("initial_sync_failed", exc_info=True)

    log.info("server_started", host=config.server.host, port=config.server.port)

    yield

    await services.http_client.aclose()
    log.info("server_stopped")


def create_app(
    config: AppConfig | None = None,
    *,
    catalog: CatalogStore | None = None,
    documents: DocumentStore | None = None,
    upstream_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the application. Tests pass fakes for the stores and upstream transport."""
    if config is None:
        config = load_config()
    _setup_logging(config)

    http_client = httpx.AsyncClient(
        transport=upstream_transport,
        follow_redirects=True,
        timeout=config.proxy.upstream_timeout_seconds,
    )
    obfuscator = IdObfuscator(config.content.id_salt)
    stats = ProxyStats()
    queue = AsyncioAdmissionQueue(
        max_concurrent=config.queue.max_concurrent,
        release_delay=config.queue.release_delay_ms / 1000,
    )
    proxy = ImageProxy(
        http_client,
        stats,
        upstream_base=config.proxy.upstream_base,
        max_width=config.proxy.max_width,
        large_width_threshold=config.proxy.large_width_threshold,
        default_quality=config.proxy.default_quality,
        upstream_timeout=config.proxy.upstream_timeout_seconds,
    )

    services = Services(
        config=config,
        catalog=catalog if catalog is not None else _build_catalog(config, http_client, obfuscator),
        documents=documents if documents is not None else _build_documents(config, http_client),
        proxy=proxy,
        queue=queue,
        stats=stats,
        obfuscator=obfuscator,
        http_client=http_client,
    )

    app = FastAPI(
        title="DESIGN PÚBLICO",
        description="Public-sector app design reference",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_exception_handler(DesignPublicoError, _handle_app_error)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    route_prefix = config.proxy.route_prefix.rstrip("/")
    app.add_middleware(
        ImageAdmissionMiddleware,
        queue=queue,
        path_prefix=route_prefix + "/",
        stats=stats,
    )

    app.include_router(apps_router)
    app.include_router(docs_router)
    app.include_router(monitoring_router)
    app.include_router(seo_router)
    app.include_router(images.create_router(route_prefix))
    return app


app = create_app()
