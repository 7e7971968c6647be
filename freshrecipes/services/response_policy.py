"""Maps pipeline results to outbound HTTP responses."""

import logging
from typing import Optional, Union

from fastapi import status
from fastapi.responses import RedirectResponse, Response

from freshrecipes.config import settings
from freshrecipes.core.request_id import get_request_id
from freshrecipes.models.image import StoredAsset
from freshrecipes.utils.exceptions import ImagePipelineError, UpstreamError

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"
FALLBACK_CACHE_CONTROL = "public, max-age=86400, stale-while-revalidate=604800"
FALLBACK_CONTENT_TYPE = "image/svg+xml"

# Static placeholder served whenever any stage fails. No script, no external refs.
FALLBACK_SVG = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="1200" height="630" '
    b'viewBox="0 0 1200 630" role="img" aria-label="Image unavailable">'
    b'<rect width="1200" height="630" fill="#f6f2ec"/>'
    b'<circle cx="600" cy="315" r="150" fill="none" stroke="#ded3c4" stroke-width="18"/>'
    b'<circle cx="600" cy="315" r="95" fill="none" stroke="#e9e1d6" stroke-width="10"/>'
    b'<path d="M395 210v90m-18-90v60a18 18 0 0 0 36 0v-60M805 210c-30 20-30 70 0 90v110" '
    b'fill="none" stroke="#c9b9a5" stroke-width="12" stroke-linecap="round"/>'
    b"</svg>"
)

PipelineResult = Union[StoredAsset, ImagePipelineError]


class ResponsePolicy:
    """Single place that turns a pipeline result into what the browser sees."""

    def __init__(self, delivery_mode: Optional[str] = None):
        self.delivery_mode = delivery_mode or settings.image_delivery_mode

    def respond(self, result: PipelineResult, data: Optional[bytes] = None) -> Response:
        """
        Build the outbound response.

        Args:
            result: StoredAsset on success, or the terminal pipeline error
            data: Validated bytes, used only in "inline" delivery mode

        Returns:
            302 to the stored asset, inline bytes, or the fallback SVG
        """
        if isinstance(result, StoredAsset):
            if self.delivery_mode == "inline" and data is not None:
                return inline_response(data, result.content_type)
            return redirect_response(result.public_url)
        return fallback_response(result)


def redirect_response(public_url: str) -> Response:
    """302 to a content-addressed asset; safe to cache forever."""
    return RedirectResponse(
        url=public_url,
        status_code=status.HTTP_302_FOUND,
        headers={
            "Cache-Control": IMMUTABLE_CACHE_CONTROL,
            "X-Content-Type-Options": "nosniff",
        },
    )


def inline_response(data: bytes, content_type: str) -> Response:
    """Validated bytes served directly."""
    return Response(
        content=data,
        media_type=content_type,
        headers={
            "Cache-Control": IMMUTABLE_CACHE_CONTROL,
            "X-Content-Type-Options": "nosniff",
        },
    )


def fallback_response(error: Optional[ImagePipelineError] = None) -> Response:
    """Fallback placeholder. Diagnostics go to the log, never the body."""
    kind = error.kind if error is not None else "MissingTarget"
    if error is not None:
        extra = {
            "request_id": get_request_id(),
            "failure_kind": kind,
            "detail": error.message,
            "url": (error.url or "")[:300],
        }
        if isinstance(error, UpstreamError):
            extra["upstream_status"] = error.status
        logger.warning(f"Image pipeline fallback: {kind}", extra=extra)

    return Response(
        content=FALLBACK_SVG,
        media_type=FALLBACK_CONTENT_TYPE,
        status_code=status.HTTP_200_OK,
        headers={
            "Cache-Control": FALLBACK_CACHE_CONTROL,
            "X-Content-Type-Options": "nosniff",
            "Content-Security-Policy": "default-src 'none'; style-src 'unsafe-inline'",
            "X-Image-Fallback": kind,
        },
    )
