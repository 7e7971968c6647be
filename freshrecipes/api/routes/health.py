"""Health check endpoints."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from freshrecipes.api.dependencies import get_blob_store
from freshrecipes.config import settings
from freshrecipes.middleware.performance import metrics
from freshrecipes.services.blob_store import BlobStore
from freshrecipes.utils.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns:
        Health status
    """
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check() -> Dict[str, Any]:
    """
    Readiness check for Cloud Run.
    Called before traffic is routed to this instance.
    """
    return {
        "status": "ready",
        "storage_backend": settings.storage_backend,
        "delivery_mode": settings.image_delivery_mode,
    }


@router.get("/metrics")
async def performance_metrics() -> Dict[str, Any]:
    """
    Get performance metrics.

    Returns:
        Request counts, durations, error rates and image fallback count
    """
    return {
        "status": "ok",
        **metrics.get_summary()
    }


@router.get("/storage")
async def storage_check(blob_store: BlobStore = Depends(get_blob_store)) -> Dict[str, Any]:
    """
    Check that the blob store accepts requests.

    Always answers 200; `ok` carries the result.
    """
    try:
        await blob_store.check()
    except StorageUnavailable as e:
        logger.warning("Storage health check failed", extra={"detail": e.message})
        return {"ok": False, "reason": "storage_unavailable"}
    return {"ok": True, "backend": settings.storage_backend}
