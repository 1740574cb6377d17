"""Image URL normalization.

Rewrites third-party CDN URLs into something the browser can request safely:

- Cloudinary delivery URLs get an inline ``c_limit`` transformation segment.
- Airtable attachment URLs (which expire and are rate limited) are routed
  through the same-origin image proxy, mirroring the upstream path.
- Anything else is returned untouched.

All functions here are pure and never raise on malformed input.
"""

from __future__ import annotations

import base64
import enum
from dataclasses import dataclass
from urllib.parse import urlencode, urlsplit
from xml.sax.saxutils import escape

PROXY_PREFIX = "/proxy-image"

_AIRTABLE_HOST_MARKER = "airtableusercontent.com"
_CLOUDINARY_HOST_MARKER = "res.cloudinary.com"
_CLOUDINARY_UPLOAD_MARKER = "/image/upload/"

# Cloudinary spells a few formats differently.
_CLOUDINARY_FORMATS = {"jpeg": "jpg"}


@dataclass(frozen=True)
class ImageOptions:
    width: int | None = None
    height: int | None = None
    format: str | None = None  # webp, avif, jpeg, png or original
    quality: int | None = None  # 1-100
    cache_bust: str | None = None


def is_airtable_image(url: str | None) -> bool:
    return bool(url) and _AIRTABLE_HOST_MARKER in url


def is_cloudinary_image(url: str | None) -> bool:
    return bool(url) and _CLOUDINARY_HOST_MARKER in url and _CLOUDINARY_UPLOAD_MARKER in url


def _cloudinary_segment(options: ImageOptions) -> str | None:
    if options.width is None and options.height is None \
            and options.format is None and options.quality is None:
        return None

    parts = ["c_limit"]
    if options.width:
        parts.append(f"w_{options.width}")
    if options.height:
        parts.append(f"h_{options.height}")
    if options.format is None:
        parts.append("f_auto")
    elif options.format != "original":
        parts.append(f"f_{_CLOUDINARY_FORMATS.get(options.format, options.format)}")
    parts.append(f"q_{options.quality}" if options.quality else "q_auto")
    return ",".join(parts)


def _rewrite_cloudinary(url: str, options: ImageOptions | None) -> str:
    if options is None:
        return url
    segment = _cloudinary_segment(options)
    if segment is None:
        return url
    return url.replace("/upload/", f"/upload/{segment}/", 1)


def _extract_path_manually(url: str) -> str | None:
    """Best-effort path extraction for URLs urllib refuses to parse."""
    idx = url.find(_AIRTABLE_HOST_MARKER)
    if idx < 0:
        return None
    rest = url[idx + len(_AIRTABLE_HOST_MARKER):]
    for sep in ("?", "#"):
        rest = rest.split(sep, 1)[0]
    if not rest.startswith("/") or rest == "/":
        return None
    return rest


def _airtable_path(url: str) -> str | None:
    try:
        path = urlsplit(url).path
    except ValueError:
        return _extract_path_manually(url)
    if not path or path == "/":
        return _extract_path_manually(url)
    return path


def _proxy_query(options: ImageOptions | None) -> str:
    if options is None:
        return ""
    params = []
    if options.width:
        params.append(("width", options.width))
    if options.height:
        params.append(("height", options.height))
    if options.format:
        params.append(("format", options.format))
    if options.quality:
        params.append(("quality", options.quality))
    if options.cache_bust:
        params.append(("v", options.cache_bust))
    return urlencode(params)


def to_proxy_url(url: str, options: ImageOptions | None = None,
                 proxy_prefix: str = PROXY_PREFIX) -> str | None:
    """Return the proxy path for an Airtable URL, or None if it has no usable path."""
    path = _airtable_path(url)
    if path is None:
        return None
    proxy_url = f"{proxy_prefix}{path}"
    query = _proxy_query(options)
    if query:
        proxy_url += f"?{query}"
    return proxy_url


def get_processed_image_url(url: str | None, options: ImageOptions | None = None,
                            proxy_prefix: str = PROXY_PREFIX) -> str:
    """Rewrite ``url`` so it loads reliably; see module docstring."""
    if not url:
        return ""
    if is_cloudinary_image(url):
        return _rewrite_cloudinary(url, options)
    if is_airtable_image(url):
        return to_proxy_url(url, options, proxy_prefix) or url
    return url


def create_fallback_image(name: str, background_color: str = "#f3f4f6") -> str:
    """SVG data URL showing the first letter of ``name``."""
    letter = escape(name[:1].upper())
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100" viewBox="0 0 100 100">'
        f'<rect width="100" height="100" fill="{background_color}" />'
        '<text x="50" y="50" font-family="Arial" font-size="40" font-weight="bold" fill="#333" '
        f'text-anchor="middle" dominant-baseline="central">{letter}</text>'
        "</svg>"
    )
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


class ImageSourceState(enum.Enum):
    DIRECT = "direct"
    PROXIED = "proxied"
    FAILED = "failed"


class ImageSourcePolicy:
    """One-shot retry policy for a broken image: DIRECT -> PROXIED -> FAILED.

    A page first tries the URL it was given. If that fails and the URL can be
    served through the proxy, the proxy URL is tried once. After that the
    fallback placeholder is used and no further retries happen.
    """

    def __init__(self, url: str | None, name: str = "",
                 options: ImageOptions | None = None,
                 proxy_prefix: str = PROXY_PREFIX) -> None:
        self._name = name
        self._options = options
        self._proxy_prefix = proxy_prefix
        self._original_url = url or ""

        if not url:
            self._state = ImageSourceState.FAILED
            self._current = create_fallback_image(name)
        elif url.startswith(proxy_prefix):
            self._state = ImageSourceState.PROXIED
            self._current = url
        else:
            self._state = ImageSourceState.DIRECT
            self._current = url

    @property
    def state(self) -> ImageSourceState:
        return self._state

    @property
    def current_url(self) -> str:
        return self._current

    def on_error(self) -> str:
        """Advance after a failed load and return the next URL to try."""
        if self._state is ImageSourceState.DIRECT and is_airtable_image(self._original_url):
            proxied = to_proxy_url(self._original_url, self._options, self._proxy_prefix)
            if proxied is not None:
                self._state = ImageSourceState.PROXIED
                self._current = proxied
                return self._current

        self._state = ImageSourceState.FAILED
        self._current = create_fallback_image(self._name)
        return self._current
