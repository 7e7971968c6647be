"""Content validation for fetched images."""

import io
import logging
import re
import warnings
from typing import Optional
from urllib.parse import urlsplit

from PIL import Image, UnidentifiedImageError

from freshrecipes.models.image import FetchOutcome, ValidatedAsset
from freshrecipes.utils.exceptions import LooksLikePlaceholder, NotAnImage

logger = logging.getLogger(__name__)

# image/svg+xml is deliberately absent: SVG can carry script.
ALLOWED_IMAGE_TYPES = frozenset({"image/png", "image/jpeg", "image/webp", "image/gif", "image/avif"})

CONTENT_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}

# Types that carry no information; the body is sniffed instead
GENERIC_CONTENT_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream", "application/binary"})

MARKUP_PREFIXES = (b"<svg", b"<?xml", b"<html", b"<!doctype", b"<script", b"<head", b"<body")

PLACEHOLDER_HOSTS = (
    "picsum.photos",
    "placehold.co",
    "placehold.it",
    "placeholder.com",
    "placekitten.com",
    "placebear.com",
    "dummyimage.com",
    "loremflickr.com",
    "lorempixel.com",
    "fakeimg.pl",
    "source.unsplash.com",
    "placeimg.com",
)
PLACEHOLDER_PATH_RE = re.compile(r"(^|[/_.-])(placeholder|dummy|no[-_]?image|image[-_]?not[-_]?found)([/_.-]|$)", re.IGNORECASE)

AVIF_BRANDS = frozenset({b"avif", b"avis"})

PIL_FORMAT_TO_MIME = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "avif": "image/avif",
}


def check_placeholder(url: str) -> None:
    """
    Reject URLs that point at known placeholder or stock-photo generators.

    Heuristic filter applied before the fetch; not a security boundary.

    Raises:
        LooksLikePlaceholder: If host or path matches a known pattern
    """
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if any(host == known or host.endswith("." + known) for known in PLACEHOLDER_HOSTS):
        raise LooksLikePlaceholder(f"Placeholder host: {host}", url=url)
    if PLACEHOLDER_PATH_RE.search(parts.path):
        raise LooksLikePlaceholder("Placeholder path", url=url)


def normalize_content_type(content_type: Optional[str]) -> str:
    """Strip parameters, lowercase and resolve common aliases."""
    value = (content_type or "").split(";", 1)[0].strip().lower()
    return CONTENT_TYPE_ALIASES.get(value, value)


def sniff_image_type(data: bytes) -> Optional[str]:
    """
    Detect image MIME type from content (magic bytes).

    Returns:
        MIME type string, or None when the bytes are not a recognizable image

    Raises:
        NotAnImage: If the header declares dimensions past Pillow's bomb limit
    """
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return "image/gif"
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    if is_avif(data):
        return "image/avif"

    # Try PIL as fallback
    with warnings.catch_warnings():
        # Treat decompression bomb warnings as errors
        warnings.simplefilter("error", Image.DecompressionBombWarning)
        try:
            with Image.open(io.BytesIO(data)) as image:
                return PIL_FORMAT_TO_MIME.get((image.format or "").lower())
        except (Image.DecompressionBombError, Image.DecompressionBombWarning) as e:
            raise NotAnImage("Image exceeds dimension limits") from e
        except UnidentifiedImageError:
            return None
        except Exception as e:
            logger.debug("Image decode failed: %s", e)
            return None


def is_avif(data: bytes) -> bool:
    """Check for an ISO-BMFF ftyp box whose major or compatible brands include AVIF."""
    if data[4:8] != b"ftyp" or len(data) < 16:
        return False
    if data[8:12] in AVIF_BRANDS:
        return True
    box_size = int.from_bytes(data[0:4], "big")
    compatible = data[16:min(box_size, 64, len(data))]
    return any(compatible[i:i + 4] in AVIF_BRANDS for i in range(0, len(compatible) - 3, 4))


def looks_like_markup(data: bytes) -> bool:
    """Check the first bytes for HTML/XML/SVG disguised as an image."""
    head = data[:512].lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    return any(head.startswith(prefix) for prefix in MARKUP_PREFIXES)


def validate(outcome: FetchOutcome) -> ValidatedAsset:
    """
    Validate a fetch outcome as an allowed image.

    Args:
        outcome: Successful fetch outcome

    Returns:
        ValidatedAsset with the validated content type

    Raises:
        NotAnImage: If the body is empty, markup, or not an allowed image type
    """
    data = outcome.body
    if not data:
        raise NotAnImage("Empty body", url=outcome.url)
    if looks_like_markup(data):
        raise NotAnImage("Body is markup, not an image", url=outcome.url)

    declared = normalize_content_type(outcome.declared_content_type)
    if declared not in GENERIC_CONTENT_TYPES and declared not in ALLOWED_IMAGE_TYPES:
        raise NotAnImage(f"Content type not allowed: {declared}", url=outcome.url)

    try:
        sniffed = sniff_image_type(data)
    except NotAnImage as e:
        e.url = outcome.url
        raise

    if sniffed is None:
        raise NotAnImage(f"Unrecognized image content ({declared or 'no content type'})", url=outcome.url)
    if declared in ALLOWED_IMAGE_TYPES and sniffed != declared:
        logger.warning(
            "Declared content type disagrees with content",
            extra={"url": outcome.url, "declared": declared, "sniffed": sniffed},
        )

    # Sniffed type wins
    content_type = sniffed
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise NotAnImage(f"Image type not allowed: {content_type}", url=outcome.url)

    return ValidatedAsset(
        data=data,
        content_type=content_type,
        byte_length=len(data),
        source_url=outcome.url,
    )
