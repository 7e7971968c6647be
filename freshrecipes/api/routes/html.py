"""HTML preparation endpoint."""

import logging

from fastapi import APIRouter, Depends, Request

from freshrecipes.middleware.rate_limit import rate_limit_dependency
from freshrecipes.models.image import RewriteHtmlRequest, RewriteHtmlResponse
from freshrecipes.services.html_tools import prepare_recipe_html
from freshrecipes.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/html", tags=["html"])

MAX_HTML_LENGTH = 2 * 1024 * 1024


@router.post("/rewrite-images", response_model=RewriteHtmlResponse)
async def rewrite_images(
    request: Request,
    body: RewriteHtmlRequest,
    _: None = Depends(rate_limit_dependency),
) -> RewriteHtmlResponse:
    """
    Route every remote `<img>` in model-generated HTML through the image endpoint.

    Also strips markdown fences / JSON wrappers and adds no-referrer
    attributes so the browser never hotlinks the origin directly.
    """
    if not body.html.strip():
        raise ValidationError("HTML must be a non-empty string")
    if len(body.html) > MAX_HTML_LENGTH:
        raise ValidationError("HTML document too large")

    logger.info(
        "Route /html/rewrite-images called",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "route": "/html/rewrite-images",
            "params": {"html_length": len(body.html), "ensure_image": body.ensure_image},
        },
    )

    html, images = prepare_recipe_html(body.html, ensure_image=body.ensure_image)
    return RewriteHtmlResponse(html=html, images=images)
