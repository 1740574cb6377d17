"""Image proxy: fetches Airtable attachments and serves optimized copies.

Flow per request: parse and resolve transform parameters, answer 304 when the
client already holds the same variant, otherwise fetch the upstream bytes,
optionally resize/transcode them off the event loop, and return them with
long-lived cache headers.

Identical concurrent requests are not coalesced; each one fetches and
processes upstream bytes on its own.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import httpx
import structlog

from designpublico.core.transform import (
    DEFAULT_QUALITY,
    LARGE_WIDTH_THRESHOLD,
    MAX_WIDTH,
    compute_etag,
    parse_transform_request,
    render_image,
    resolve_transform,
)
from designpublico.errors import BadRequestError

if TYPE_CHECKING:
    from designpublico.core.stats import ProxyStats

log = structlog.get_logger()

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"

# Full upstream URLs are only followed to this host and its subdomains.
AIRTABLE_HOST = "airtableusercontent.com"


@dataclass
class ProxyResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class ImageProxy:
    """Serves ``/proxy-image/<upstream path>`` requests."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        stats: ProxyStats,
        *,
        upstream_base: str = "https://v5.airtableusercontent.com",
        max_width: int = MAX_WIDTH,
        large_width_threshold: int = LARGE_WIDTH_THRESHOLD,
        default_quality: int = DEFAULT_QUALITY,
        upstream_timeout: float = 15.0,
        available_formats: frozenset[str] | None = None,
    ) -> None:
        self._client = http_client
        self._stats = stats
        self._upstream_base = upstream_base.rstrip("/")
        self._max_width = max_width
        self._large_width_threshold = large_width_threshold
        self._default_quality = default_quality
        self._timeout = upstream_timeout
        self._available_formats = available_formats

    def upstream_url(self, path: str) -> str:
        """Map a proxy path fragment to the upstream URL it mirrors."""
        candidate = path.lstrip("/")
        if candidate.startswith("https://"):
            try:
                parts = urlsplit(candidate)
            except ValueError as exc:
                raise BadRequestError(f"Malformed upstream URL: {candidate}") from exc
            host = (parts.hostname or "").lower()
            if parts.username is not None or parts.password is not None \
                    or not (host == AIRTABLE_HOST or host.endswith("." + AIRTABLE_HOST)):
                raise BadRequestError(f"Upstream host not allowed: {candidate}")
            return candidate
        if not path.startswith("/"):
            path = "/" + path
        return f"{self._upstream_base}{path}"

    async def handle(
        self,
        path: str,
        params: Mapping[str, str],
        accept: str | None = None,
        if_none_match: str | None = None,
    ) -> ProxyResponse:
        self._stats.record_request()

        request = parse_transform_request(
            path,
            width=params.get("width"),
            height=params.get("height"),
            format=params.get("format"),
            quality=params.get("quality"),
            default_quality=self._default_quality,
        )
        resolved = resolve_transform(
            request,
            accept,
            max_width=self._max_width,
            large_width_threshold=self._large_width_threshold,
            available=self._available_formats,
        )
        etag = compute_etag(resolved)

        if if_none_match == etag:
            self._stats.record_not_modified()
            log.debug("image_not_modified", path=path)
            return ProxyResponse(status_code=304, headers={"ETag": etag, "Vary": "Accept"})

        url = self.upstream_url(path)

        try:
            log.debug("image_fetch_started", url=url, width=resolved.width,
                      height=resolved.height, format=resolved.format)
            response = await self._client.get(
                url, headers={"Accept": "image/*"}, timeout=self._timeout,
            )
            response.raise_for_status()
            original = response.content
            original_type = response.headers.get("content-type", "application/octet-stream")

            if resolved.needs_processing:
                body, content_type = await asyncio.to_thread(render_image, original, resolved)
            else:
                body, content_type = original, original_type
        except Exception as exc:
            self._stats.record_error()
            log.error("image_proxy_failed", path=path, url=url, error=str(exc), exc_info=True)
            payload = {
                "error": "Failed to proxy image",
                "details": str(exc) or type(exc).__name__,
                "path": path,
            }
            return ProxyResponse(
                status_code=500,
                headers={"Content-Type": "application/json", "Cache-Control": "no-store"},
                body=json.dumps(payload).encode("utf-8"),
            )

        self._stats.record_served(
            resolved.format, len(original), len(body), transformed=resolved.needs_processing,
        )
        log.info("image_proxied", path=path, format=resolved.format,
                 width=resolved.width, quality=resolved.quality,
                 bytes_in=len(original), bytes_out=len(body))

        return ProxyResponse(
            status_code=200,
            headers={
                "Content-Type": content_type,
                "Cache-Control": IMMUTABLE_CACHE_CONTROL,
                "ETag": etag,
                "Vary": "Accept",
            },
            body=body,
        )
