"""Tests for the image proxy, both through HTTP and against ImageProxy directly."""

from __future__ import annotations

import asyncio
from io import BytesIO

import httpx
import pytest
from PIL import Image

from designpublico.core.models import ResolvedTransform
from designpublico.core.proxy import IMMUTABLE_CACHE_CONTROL, ImageProxy
from designpublico.core.stats import ProxyStats
from designpublico.core.transform import compute_etag
from designpublico.errors import BadRequestError


@pytest.mark.asyncio
async def test_passthrough_without_params(client, upstream):
    resp = await client.get("/proxy-image/v3/u/1/a.png", headers={"Accept": "image/avif,image/webp"})
    assert resp.status_code == 200
    assert resp.content == upstream.image
    assert resp.headers["content-type"] == "image/png"
    assert resp.headers["cache-control"] == IMMUTABLE_CACHE_CONTROL
    assert "Accept" in [v.strip() for v in resp.headers["vary"].split(",")]
    assert resp.headers["etag"].startswith('"')

    sent = upstream.requests[0]
    assert str(sent.url) == "https://v5.airtableusercontent.com/v3/u/1/a.png"
    assert sent.headers["accept"] == "image/*"


@pytest.mark.asyncio
async def test_resize_and_transcode(client):
    resp = await client.get("/proxy-image/v3/u/1/a.png", params={"width": "300", "format": "webp"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/webp"
    im = Image.open(BytesIO(resp.content))
    assert im.size == (300, 200)


@pytest.mark.asyncio
async def test_negotiates_webp_from_accept(client):
    resp = await client.get(
        "/proxy-image/v3/u/1/a.png", params={"width": "200"}, headers={"Accept": "image/webp,*/*"},
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/webp"


@pytest.mark.asyncio
async def test_negotiates_jpeg_without_accept_hint(client):
    resp = await client.get("/proxy-image/v3/u/1/a.png", params={"width": "200"}, headers={"Accept": "*/*"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"


@pytest.mark.asyncio
async def test_not_modified_skips_upstream(client, upstream):
    path = "/v3/u/1/a.png"
    etag = compute_etag(ResolvedTransform(path=path, width=300, height=None, format="png", quality=80))

    resp = await client.get(
        f"/proxy-image{path}",
        params={"width": "300", "format": "png"},
        headers={"If-None-Match": etag},
    )
    assert resp.status_code == 304
    assert resp.content == b""
    assert resp.headers["etag"] == etag
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_etag_round_trip(client, upstream):
    first = await client.get("/proxy-image/v3/u/1/a.png", params={"width": "300", "format": "jpeg"})
    assert first.status_code == 200

    second = await client.get(
        "/proxy-image/v3/u/1/a.png",
        params={"width": "300", "format": "jpeg"},
        headers={"If-None-Match": first.headers["etag"]},
    )
    assert second.status_code == 304
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_stale_etag_refetches(client, upstream):
    resp = await client.get(
        "/proxy-image/v3/u/1/a.png",
        params={"width": "300", "format": "jpeg"},
        headers={"If-None-Match": '"stale"'},
    )
    assert resp.status_code == 200
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_upstream_error_returns_500_json(client, services):
    resp = await client.get("/proxy-image/missing", params={"width": "100"})
    assert resp.status_code == 500
    assert resp.headers["cache-control"] == "no-store"
    data = resp.json()
    assert data["error"] == "Failed to proxy image"
    assert data["path"] == "/missing"
    assert "details" in data
    assert services.stats.snapshot()["errors"] == 1


@pytest.mark.asyncio
async def test_undecodable_upstream_bytes_return_500(client):
    resp = await client.get("/proxy-image/broken", params={"width": "100"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to proxy image"


@pytest.mark.asyncio
async def test_unknown_format_is_bad_request(client, upstream):
    resp = await client.get("/proxy-image/v3/u/1/a.png", params={"format": "bmp"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "BAD_REQUEST"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_stats_count_proxy_traffic(client):
    await client.get("/proxy-image/v3/u/1/a.png")
    await client.get("/proxy-image/v3/u/1/a.png", params={"width": "100", "format": "png"})

    data = (await client.get("/api/stats")).json()
    assert data["requests"] == 2
    assert data["passthrough"] == 1
    assert data["transformed"] == 1
    assert data["formats"] == {"original": 1, "png": 1}


@pytest.mark.asyncio
async def test_proxy_requests_never_exceed_queue_limit(config, upstream):
    from designpublico.main import create_app

    config.queue.max_concurrent = 2
    in_flight = 0
    peak = 0

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.02)
        in_flight -= 1
        return upstream.handler(request)

    app = create_app(config, upstream_transport=httpx.MockTransport(slow_handler))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        responses = await asyncio.gather(*(c.get(f"/proxy-image/v3/u/{i}/a.png") for i in range(6)))
    await app.state.services.http_client.aclose()

    assert all(r.status_code == 200 for r in responses)
    assert peak == 2
    assert app.state.services.queue.active == 0


def _proxy(transport: httpx.MockTransport) -> ImageProxy:
    return ImageProxy(
        httpx.AsyncClient(transport=transport),
        ProxyStats(),
        available_formats=frozenset({"webp", "jpeg", "png"}),
    )


def test_upstream_url_mapping(upstream):
    proxy = _proxy(httpx.MockTransport(upstream.handler))
    assert proxy.upstream_url("/v3/u/1/a.png") == "https://v5.airtableusercontent.com/v3/u/1/a.png"
    assert proxy.upstream_url("v3/u/1/a.png") == "https://v5.airtableusercontent.com/v3/u/1/a.png"

    full = "https://v5.airtableusercontent.com/v3/u/2/b.png"
    assert proxy.upstream_url("/" + full) == full


def test_upstream_url_rejects_foreign_hosts(upstream):
    proxy = _proxy(httpx.MockTransport(upstream.handler))
    for path in (
        "/https://evil.example.com/a.png",
        "/https://airtableusercontent.com.evil.example/a.png",
        "/https://airtableusercontent.com@evil.example/a.png",
        "/https://user:pw@v5.airtableusercontent.com/a.png",
        "/https://evil.example/airtableusercontent.com/a.png",
    ):
        with pytest.raises(BadRequestError):
            proxy.upstream_url(path)


def test_upstream_url_accepts_airtable_subdomains(upstream):
    proxy = _proxy(httpx.MockTransport(upstream.handler))
    for url in ("https://airtableusercontent.com/a.png", "https://V5.AirtableUserContent.com/a.png"):
        assert proxy.upstream_url("/" + url) == url


@pytest.mark.asyncio
async def test_handle_avif_request_falls_back_when_encoder_missing(upstream):
    proxy = _proxy(httpx.MockTransport(upstream.handler))
    result = await proxy.handle("/v3/u/1/a.png", {"width": "2000", "quality": "90"},
                                accept="image/avif,image/webp")
    assert result.status_code == 200
    assert result.headers["Content-Type"] == "image/webp"
    im = Image.open(BytesIO(result.body))
    assert im.width == 1000
