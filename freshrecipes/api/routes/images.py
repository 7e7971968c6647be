"""Image re-hosting endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response

from freshrecipes.api.dependencies import (
    get_blob_store,
    get_image_discovery,
    get_image_pipeline,
    get_response_policy,
)
from freshrecipes.config import settings
from freshrecipes.middleware.auth import verify_api_key
from freshrecipes.middleware.rate_limit import rate_limit_dependency
from freshrecipes.models.image import (
    DiscoverRequest,
    DiscoverResponse,
    ImageRequest,
    IngestRequest,
    IngestResponse,
)
from freshrecipes.services.blob_store import BlobStore, MemoryBlobStore
from freshrecipes.services.image_discovery import ImageDiscovery
from freshrecipes.services.image_pipeline import ImagePipeline
from freshrecipes.services.response_policy import (
    IMMUTABLE_CACHE_CONTROL,
    ResponsePolicy,
    fallback_response,
)
from freshrecipes.utils.exceptions import GuardError, InternalError, ValidationError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["images"])


@router.get(settings.image_route_path)
async def get_image(
    target: Optional[str] = Query(None, description="Remote image URL"),
    referer: Optional[str] = Query(None, description="Referer for hotlink-protected origins"),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
    policy: ResponsePolicy = Depends(get_response_policy),
) -> Response:
    """
    Re-host a remote image and point the browser at the durable copy.

    - **target**: Image URL found in model output
    - **referer**: Optional Referer to send upstream

    Always answers with something an `<img>` can render: a 302 to the
    stored asset, or a 200 fallback SVG.
    """
    if not target or not target.strip():
        return fallback_response()

    try:
        outcome = await pipeline.process(ImageRequest(raw_url=target, referer_hint=referer))
    except Exception as e:
        # An <img> must always get an image, even on an untyped failure
        logger.error(
            f"Unexpected image pipeline failure: {str(e)}",
            extra={"url": target[:300], "failure_kind": "InternalError"},
            exc_info=True,
        )
        return fallback_response(InternalError("Unexpected pipeline failure", url=target))

    data = outcome.validated.data if outcome.validated is not None else None
    return policy.respond(outcome.result, data=data)


@router.post("/images/ingest", response_model=IngestResponse)
async def ingest_images(
    request: Request,
    body: IngestRequest,
    _: None = Depends(rate_limit_dependency),
    __: Optional[str] = Depends(verify_api_key),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
) -> IngestResponse:
    """
    Re-host a batch of image URLs ahead of archiving a page.

    Each URL succeeds or fails independently; failures carry only the
    failure kind.
    """
    if not body.urls:
        raise ValidationError("At least one URL is required")
    if len(body.urls) > settings.image_max_ingest_urls:
        raise ValidationError(f"Too many URLs (max {settings.image_max_ingest_urls})")

    logger.info(
        "Route /images/ingest called",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "route": "/images/ingest",
            "params": {"url_count": len(body.urls), "has_referer": bool(body.referer)},
        },
    )

    results = await pipeline.ingest_many(body.urls, referer=body.referer)
    return IngestResponse(results=results)


@router.post("/images/discover", response_model=DiscoverResponse)
async def discover_images(
    request: Request,
    body: DiscoverRequest,
    _: None = Depends(rate_limit_dependency),
    __: Optional[str] = Depends(verify_api_key),
    discovery: ImageDiscovery = Depends(get_image_discovery),
) -> DiscoverResponse:
    """
    Re-host real images found on a recipe's source page.

    - **page_url**: Page the recipe was taken from
    - **max_images**: How many working images to keep

    A page that cannot be fetched answers 502 with the failure kind;
    individual image failures are reported per candidate.
    """
    logger.info(
        "Route /images/discover called",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "route": "/images/discover",
            "params": {"max_images": body.max_images},
        },
    )

    try:
        return await discovery.discover(body.page_url, max_images=body.max_images)
    except GuardError as e:
        raise ValidationError(f"Page URL rejected: {e.kind}") from e


@router.get("/blobs/images/{name}", include_in_schema=False)
async def get_memory_blob(name: str, blob_store: BlobStore = Depends(get_blob_store)) -> Response:
    """Serve assets from the in-memory store (local development only)."""
    if not isinstance(blob_store, MemoryBlobStore):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    stored = blob_store.get(f"images/{name}")
    if stored is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    data, content_type = stored
    return Response(
        content=data,
        media_type=content_type,
        headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL},
    )
