"""robots.txt and sitemap.xml."""

from __future__ import annotations

from xml.sax.saxutils import escape

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response

from designpublico.services import Services, get_services

log = structlog.get_logger()

router = APIRouter()

_STATIC_PAGES = [
    ("/", "weekly", "1.0"),
    ("/screens", "weekly", "0.8"),
    ("/about", "monthly", "0.7"),
]


@router.get("/robots.txt", response_class=PlainTextResponse)
async def robots(services: Services = Depends(get_services)) -> str:
    base = services.config.server.public_base_url.rstrip("/")
    prefix = services.config.proxy.route_prefix.rstrip("/")
    return (
        "User-agent: *\n"
        "Allow: /\n"
        f"Disallow: {prefix}/\n"
        "Disallow: /api/\n"
        "\n"
        f"Sitemap: {base}/sitemap.xml\n"
        "\n"
        "Crawl-delay: 2\n"
    )


def _url_entry(loc: str, changefreq: str, priority: str) -> str:
    return (
        f"<url><loc>{escape(loc)}</loc>"
        f"<changefreq>{changefreq}</changefreq>"
        f"<priority>{priority}</priority></url>"
    )


@router.get("/sitemap.xml")
async def sitemap(services: Services = Depends(get_services)) -> Response:
    base = services.config.server.public_base_url.rstrip("/")
    try:
        apps = await services.catalog.list_apps()
    except Exception:
        log.error("sitemap_failed", exc_info=True)
        return PlainTextResponse("Error generating sitemap", status_code=500)

    entries = [_url_entry(f"{base}{path}", freq, prio) for path, freq, prio in _STATIC_PAGES]
    entries += [_url_entry(f"{base}/app/{app.slug or app.id}", "monthly", "0.6") for app in apps]

    body = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        + "".join(entries)
        + "</urlset>"
    )
    return Response(content=body, media_type="application/xml")
