"""Tests for image URL normalization and the client retry policy."""

from __future__ import annotations

import base64

from designpublico.core.normalizer import (
    ImageOptions,
    ImageSourcePolicy,
    ImageSourceState,
    create_fallback_image,
    get_processed_image_url,
    is_airtable_image,
    is_cloudinary_image,
)

AIRTABLE_URL = "https://v5.airtableusercontent.com/v3/u/29/29/123/abc/def/image.png?expires=1"
CLOUDINARY_URL = "https://res.cloudinary.com/demo/image/upload/v1/sample.jpg"


def test_empty_input():
    assert get_processed_image_url(None) == ""
    assert get_processed_image_url("") == ""


def test_predicates():
    assert is_airtable_image(AIRTABLE_URL)
    assert not is_airtable_image(CLOUDINARY_URL)
    assert is_cloudinary_image(CLOUDINARY_URL)
    assert not is_cloudinary_image("https://res.cloudinary.com/demo/raw/file.txt")
    assert not is_airtable_image(None)


def test_other_urls_unchanged():
    url = "https://random.imagecdn.app/500/300?image=1"
    assert get_processed_image_url(url, ImageOptions(width=300)) == url


def test_airtable_rewritten_to_proxy():
    url = get_processed_image_url(
        AIRTABLE_URL, ImageOptions(width=400, format="webp", quality=70, cache_bust="42"),
    )
    assert url == "/proxy-image/v3/u/29/29/123/abc/def/image.png?width=400&format=webp&quality=70&v=42"


def test_airtable_without_options_keeps_bare_path():
    assert get_processed_image_url(AIRTABLE_URL) == "/proxy-image/v3/u/29/29/123/abc/def/image.png"


def test_airtable_custom_prefix():
    url = get_processed_image_url(AIRTABLE_URL, proxy_prefix="/img")
    assert url.startswith("/img/v3/")


def test_cloudinary_full_segment():
    url = get_processed_image_url(
        CLOUDINARY_URL, ImageOptions(width=300, height=200, format="jpeg", quality=60),
    )
    assert url == "https://res.cloudinary.com/demo/image/upload/c_limit,w_300,h_200,f_jpg,q_60/v1/sample.jpg"


def test_cloudinary_defaults_to_auto():
    url = get_processed_image_url(CLOUDINARY_URL, ImageOptions(width=300))
    assert "/upload/c_limit,w_300,f_auto,q_auto/" in url


def test_cloudinary_original_format_has_no_f_part():
    url = get_processed_image_url(CLOUDINARY_URL, ImageOptions(format="original", quality=90))
    assert "/upload/c_limit,q_90/" in url


def test_cloudinary_without_options_unchanged():
    assert get_processed_image_url(CLOUDINARY_URL) == CLOUDINARY_URL
    assert get_processed_image_url(CLOUDINARY_URL, ImageOptions()) == CLOUDINARY_URL


def test_malformed_airtable_url_does_not_raise():
    # urlsplit rejects the unbalanced IPv6 bracket; manual extraction takes over.
    url = "https://[v5.airtableusercontent.com/v3/u/1/image.png"
    assert get_processed_image_url(url) == "/proxy-image/v3/u/1/image.png"


def test_airtable_url_without_path_returned_unchanged():
    url = "https://v5.airtableusercontent.com"
    assert get_processed_image_url(url) == url


def test_fallback_image_shows_initial():
    data_url = create_fallback_image("gov.br")
    assert data_url.startswith("data:image/svg+xml;base64,")
    svg = base64.b64decode(data_url.split(",", 1)[1]).decode("utf-8")
    assert ">G</text>" in svg
    assert 'fill="#f3f4f6"' in svg


def test_fallback_image_escapes_markup():
    for name, expected in (("<b>", ">&lt;</text>"), ("&Co", ">&amp;</text>")):
        data_url = create_fallback_image(name)
        svg = base64.b64decode(data_url.split(",", 1)[1]).decode("utf-8")
        assert expected in svg
        assert "<b>" not in svg


def test_policy_airtable_goes_through_proxy_then_fails():
    policy = ImageSourcePolicy(AIRTABLE_URL, name="Meu SUS")
    assert policy.state is ImageSourceState.DIRECT
    assert policy.current_url == AIRTABLE_URL

    next_url = policy.on_error()
    assert policy.state is ImageSourceState.PROXIED
    assert next_url.startswith("/proxy-image/v3/")

    next_url = policy.on_error()
    assert policy.state is ImageSourceState.FAILED
    assert next_url == create_fallback_image("Meu SUS")

    # Terminal.
    assert policy.on_error() == create_fallback_image("Meu SUS")
    assert policy.state is ImageSourceState.FAILED


def test_policy_non_proxyable_url_fails_directly():
    policy = ImageSourcePolicy("https://example.org/a.png", name="Exames")
    assert policy.on_error() == create_fallback_image("Exames")
    assert policy.state is ImageSourceState.FAILED


def test_policy_starting_from_proxy_path():
    policy = ImageSourcePolicy("/proxy-image/v3/u/1/a.png", name="Gov")
    assert policy.state is ImageSourceState.PROXIED
    policy.on_error()
    assert policy.state is ImageSourceState.FAILED


def test_policy_without_url_starts_failed():
    policy = ImageSourcePolicy(None, name="Vacinas")
    assert policy.state is ImageSourceState.FAILED
    assert policy.current_url == create_fallback_image("Vacinas")
