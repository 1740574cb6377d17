"""Shared test fixtures."""

from __future__ import annotations

from io import BytesIO

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from designpublico.config import AppConfig
from designpublico.main import create_app


def make_image(size=(1200, 800), fmt="PNG", mode="RGB", color=(200, 40, 40)) -> bytes:
    """Encode a solid-color test image."""
    out = BytesIO()
    Image.new(mode, size, color).save(out, fmt)
    return out.getvalue()


class FakeUpstream:
    """Stands in for the Airtable attachment CDN.

    Every path serves the same PNG, except ``/missing`` (404) and
    ``/broken`` (200 with bytes that are not an image).
    """

    def __init__(self) -> None:
        self.image = make_image()
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/missing":
            return httpx.Response(404, text="not found")
        if request.url.path == "/broken":
            return httpx.Response(200, content=b"definitely not an image",
                                  headers={"content-type": "image/png"})
        return httpx.Response(200, content=self.image, headers={"content-type": "image/png"})


@pytest.fixture
def config():
    config = AppConfig()
    config.logging.level = "warning"
    config.queue.release_delay_ms = 0
    return config


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def app(config, upstream):
    return create_app(config, upstream_transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    await app.state.services.http_client.aclose()
