"""Tests for image content validation."""

import struct

import pytest

from freshrecipes.models.image import FetchOutcome
from freshrecipes.services.image_validator import (
    check_placeholder,
    looks_like_markup,
    normalize_content_type,
    sniff_image_type,
    validate,
)
from freshrecipes.utils.exceptions import LooksLikePlaceholder, NotAnImage

from image_fixtures import (
    HTML_CONTENT,
    SVG_CONTENT,
    SVG_WITH_XML,
    TEXT_CONTENT,
    TINY_AVIF,
    TINY_GIF,
    TINY_JPEG,
    TINY_PNG,
    TINY_WEBP,
)


def outcome(body: bytes, content_type=None) -> FetchOutcome:
    return FetchOutcome(
        url="https://cdn.example.com/a",
        status_code=200,
        declared_content_type=content_type,
        body=body,
    )


class TestSniffing:
    @pytest.mark.parametrize(
        "data,expected",
        [
            (TINY_PNG, "image/png"),
            (TINY_JPEG, "image/jpeg"),
            (TINY_GIF, "image/gif"),
            (TINY_WEBP, "image/webp"),
            (TINY_AVIF, "image/avif"),
            (TEXT_CONTENT, None),
        ],
    )
    def test_magic_bytes(self, data, expected):
        assert sniff_image_type(data) == expected

    def test_markup_detection(self):
        assert looks_like_markup(HTML_CONTENT)
        assert looks_like_markup(SVG_CONTENT)
        assert looks_like_markup(b"\n  " + SVG_WITH_XML)
        assert not looks_like_markup(TINY_PNG)

    def test_normalize_content_type(self):
        assert normalize_content_type("Image/JPG; charset=binary") == "image/jpeg"
        assert normalize_content_type(None) == ""


class TestValidate:
    def test_accepts_matching_type(self):
        asset = validate(outcome(TINY_PNG, "image/png"))
        assert asset.content_type == "image/png"
        assert asset.byte_length == len(TINY_PNG)
        assert asset.source_url == "https://cdn.example.com/a"

    def test_missing_content_type_uses_sniffed(self):
        assert validate(outcome(TINY_WEBP)).content_type == "image/webp"

    def test_octet_stream_uses_sniffed(self):
        assert validate(outcome(TINY_GIF, "application/octet-stream")).content_type == "image/gif"

    def test_sniffed_type_wins_on_mismatch(self):
        assert validate(outcome(TINY_JPEG, "image/png")).content_type == "image/jpeg"

    def test_rejects_html_declared(self):
        with pytest.raises(NotAnImage):
            validate(outcome(HTML_CONTENT, "text/html; charset=utf-8"))

    def test_rejects_html_disguised_as_image(self):
        with pytest.raises(NotAnImage):
            validate(outcome(HTML_CONTENT, "image/jpeg"))

    def test_rejects_svg(self):
        with pytest.raises(NotAnImage):
            validate(outcome(SVG_CONTENT, "image/svg+xml"))

    def test_rejects_svg_with_generic_type(self):
        with pytest.raises(NotAnImage):
            validate(outcome(SVG_WITH_XML, "application/octet-stream"))

    def test_rejects_unrecognized_bytes_without_type(self):
        with pytest.raises(NotAnImage):
            validate(outcome(TEXT_CONTENT))

    def test_rejects_empty_body(self):
        with pytest.raises(NotAnImage):
            validate(outcome(b"", "image/png"))

    def test_rejects_disallowed_image_type(self):
        with pytest.raises(NotAnImage):
            validate(outcome(b"BM" + b"\x00" * 64, "image/bmp"))


class TestPlaceholders:
    @pytest.mark.parametrize(
        "url",
        [
            "https://picsum.photos/800/600",
            "https://placehold.co/600x400",
            "https://via.placeholder.com/150",
            "https://source.unsplash.com/random/800x600?food",
            "https://cdn.example.com/assets/placeholder.png",
            "https://cdn.example.com/img/no-image.jpg",
        ],
    )
    def test_rejects(self, url):
        with pytest.raises(LooksLikePlaceholder):
            check_placeholder(url)

    @pytest.mark.parametrize(
        "url",
        [
            "https://images.unsplash.com/photo-1504674900247-0877df9cc836",
            "https://cdn.example.com/recipes/lasagna.jpg",
        ],
    )
    def test_allows_real_images(self, url):
        check_placeholder(url)


class TestHostileImages:
    def test_decompression_bomb_is_not_an_image(self):
        # BMP header declaring 30000 x 30000 pixels, past twice the pixel limit
        bomb = struct.pack("<2sIHHI", b"BM", 54, 0, 0, 54) + struct.pack(
            "<IiiHHIIiiII", 40, 30000, 30000, 1, 24, 0, 0, 2835, 2835, 0, 0
        )

        with pytest.raises(NotAnImage) as exc:
            validate(outcome(bomb, "image/png"))
        assert exc.value.url == "https://cdn.example.com/a"

    def test_garbage_with_allowed_declared_type_is_rejected(self):
        with pytest.raises(NotAnImage):
            validate(outcome(b"\x01\x02garbage-not-an-image" * 10, "image/png"))

    def test_avif_compatible_brand(self):
        data = b"\x00\x00\x00\x1cftypmif1\x00\x00\x00\x00mif1avifmiaf" + b"\x00" * 16
        assert sniff_image_type(data) == "image/avif"

    def test_heif_without_avif_brand_is_rejected(self):
        data = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic" + b"\x00" * 16
        assert sniff_image_type(data) is None
