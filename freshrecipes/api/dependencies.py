"""Shared API dependencies."""

from functools import lru_cache

from fastapi import Depends

from freshrecipes.services.asset_store import AssetStore
from freshrecipes.services.blob_store import BlobStore, create_blob_store
from freshrecipes.services.image_discovery import ImageDiscovery
from freshrecipes.services.image_fetcher import ImageFetcher
from freshrecipes.services.image_pipeline import ImagePipeline
from freshrecipes.services.response_policy import ResponsePolicy


@lru_cache
def get_blob_store() -> BlobStore:
    """Get the process-wide blob store backend."""
    return create_blob_store()


def get_image_pipeline(blob_store: BlobStore = Depends(get_blob_store)) -> ImagePipeline:
    """Get an image pipeline bound to the configured store."""
    return ImagePipeline(fetcher=ImageFetcher(), store=AssetStore(blob_store))


def get_response_policy() -> ResponsePolicy:
    """Get the response policy for image requests."""
    return ResponsePolicy()


def get_image_discovery(pipeline: ImagePipeline = Depends(get_image_pipeline)) -> ImageDiscovery:
    """Get source page image discovery bound to the image pipeline."""
    return ImageDiscovery(pipeline=pipeline)
