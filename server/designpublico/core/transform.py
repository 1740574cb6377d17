"""Image transform resolution and rendering.

Everything up to the ETag is pure and synchronous. ``render_image`` is CPU
bound (Pillow decode/resize/encode) and is meant to be run in a worker thread.
"""

from __future__ import annotations

import base64
import re
from io import BytesIO

from PIL import Image

from designpublico.core.models import ImageTransformRequest, ResolvedTransform
from designpublico.errors import BadRequestError, ImageProcessingError

DEFAULT_QUALITY = 80
MAX_WIDTH = 1000
LARGE_WIDTH_THRESHOLD = 1500
LARGE_WIDTH_QUALITY = 75

# Per-format quality ceilings applied when the format was negotiated.
NEGOTIATED_QUALITY_CAP = {"avif": 70, "webp": 80}

CONTENT_TYPES = {
    "avif": "image/avif",
    "webp": "image/webp",
    "jpeg": "image/jpeg",
    "png": "image/png",
}

_PIL_FORMATS = {"avif": "AVIF", "webp": "WEBP", "jpeg": "JPEG", "png": "PNG"}
_ACCEPTED_FORMATS = {"auto", "original", "avif", "webp", "jpeg", "png"}
_FORMAT_ALIASES = {"jpg": "jpeg"}

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def available_output_formats() -> frozenset[str]:
    """Output formats the installed Pillow build can encode."""
    Image.init()
    return frozenset(name for name, pil_name in _PIL_FORMATS.items() if pil_name in Image.SAVE)


def _parse_int(raw: str | None) -> int | None:
    """Lenient integer parsing: leading digits count, junk after them is ignored."""
    if raw is None:
        return None
    m = _INT_PREFIX.match(raw)
    if not m:
        return None
    value = int(m.group(1))
    return value if value > 0 else None


def _parse_format(raw: str | None) -> str | None:
    if raw is None or not raw.strip():
        return None
    fmt = raw.strip().lower()
    fmt = _FORMAT_ALIASES.get(fmt, fmt)
    if fmt not in _ACCEPTED_FORMATS:
        raise BadRequestError(f"Unsupported image format: {raw}")
    return fmt


def parse_transform_request(
    path: str,
    width: str | None = None,
    height: str | None = None,
    format: str | None = None,
    quality: str | None = None,
    default_quality: int = DEFAULT_QUALITY,
) -> ImageTransformRequest:
    """Build an ImageTransformRequest from raw query-string values."""
    q = _parse_int(quality) or default_quality
    return ImageTransformRequest(
        path=path,
        width=_parse_int(width),
        height=_parse_int(height),
        format=_parse_format(format),
        quality=max(1, min(q, 100)),
    )


def _accepted_media_types(accept: str | None) -> set[str]:
    if not accept:
        return set()
    return {part.split(";", 1)[0].strip().lower() for part in accept.split(",")}


def negotiate_format(accept: str | None, available: frozenset[str] | None = None) -> str:
    """Pick the best output format advertised by the client: AVIF > WebP > JPEG."""
    if available is None:
        available = available_output_formats()
    media_types = _accepted_media_types(accept)
    if "image/avif" in media_types and "avif" in available:
        return "avif"
    if "image/webp" in media_types and "webp" in available:
        return "webp"
    return "jpeg"


def resolve_transform(
    request: ImageTransformRequest,
    accept: str | None = None,
    *,
    max_width: int = MAX_WIDTH,
    large_width_threshold: int = LARGE_WIDTH_THRESHOLD,
    available: frozenset[str] | None = None,
) -> ResolvedTransform:
    """Apply the width clamp, bandwidth guard and format negotiation."""
    width = request.width
    quality = request.quality

    if width is not None and width > max_width:
        if width > large_width_threshold and quality > LARGE_WIDTH_QUALITY:
            quality = LARGE_WIDTH_QUALITY
        width = max_width

    if not request.has_transform_params:
        fmt = "original"
    elif request.format in (None, "auto"):
        fmt = negotiate_format(accept, available)
        cap = NEGOTIATED_QUALITY_CAP.get(fmt)
        if cap is not None and quality > cap:
            quality = cap
    else:
        fmt = request.format

    return ResolvedTransform(
        path=request.path,
        width=width,
        height=request.height,
        format=fmt,
        quality=quality,
    )


def compute_etag(resolved: ResolvedTransform) -> str:
    """Deterministic validator over the full set of resolved parameters."""
    cache_key = (
        f"{resolved.path}-{resolved.width or 'orig'}-{resolved.height or 'orig'}"
        f"-{resolved.format}-{resolved.quality}"
    )
    return '"' + base64.b64encode(cache_key.encode("utf-8")).decode("ascii") + '"'


def _has_alpha(im: Image.Image) -> bool:
    return im.mode in ("RGBA", "LA", "PA") or (im.mode == "P" and "transparency" in im.info)


def _encode(im: Image.Image, fmt: str, quality: int, source_format: str | None) -> tuple[bytes, str]:
    out = BytesIO()

    if fmt == "original":
        pil_format = source_format or "JPEG"
        if pil_format == "JPEG" and im.mode not in ("RGB", "L"):
            im = im.convert("RGB")
        options = {"quality": quality} if pil_format in ("JPEG", "WEBP", "AVIF") else {}
        im.save(out, pil_format, **options)
        return out.getvalue(), Image.MIME.get(pil_format, "application/octet-stream")

    if fmt == "jpeg":
        if im.mode not in ("RGB", "L"):
            im = im.convert("RGB")
        im.save(out, "JPEG", quality=quality, optimize=True, progressive=True)
    elif fmt == "png":
        # Palette reduction replaces the quality scalar for PNG.
        if _has_alpha(im):
            im = im.convert("RGBA").quantize(colors=256, method=Image.Quantize.FASTOCTREE)
        else:
            im = im.convert("RGB").quantize(colors=256)
        im.save(out, "PNG", optimize=True, compress_level=9)
    elif fmt in ("webp", "avif"):
        im = im.convert("RGBA" if _has_alpha(im) else "RGB")
        options = {"method": 6} if fmt == "webp" else {}
        im.save(out, _PIL_FORMATS[fmt], quality=quality, **options)
    else:
        raise ImageProcessingError(f"Unsupported output format: {fmt}")

    return out.getvalue(), CONTENT_TYPES[fmt]


def render_image(data: bytes, resolved: ResolvedTransform) -> tuple[bytes, str]:
    """Resize (fit inside, never upscale) and encode. Returns (bytes, content_type)."""
    try:
        with Image.open(BytesIO(data)) as source:
            source_format = source.format
            source.load()
            im = source.copy()

        if resolved.width or resolved.height:
            box = (resolved.width or im.width, resolved.height or im.height)
            im.thumbnail(box, Image.Resampling.LANCZOS)

        return _encode(im, resolved.format, resolved.quality, source_format)
    except ImageProcessingError:
        raise
    except (OSError, ValueError, KeyError, Image.DecompressionBombError) as exc:
        raise ImageProcessingError(f"Image processing failed: {exc}") from exc
