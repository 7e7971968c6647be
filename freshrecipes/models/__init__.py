"""Pydantic models."""

from freshrecipes.models.image import (
    DiscoverRequest,
    DiscoverResponse,
    FetchOutcome,
    ImageRequest,
    IngestRequest,
    IngestResponse,
    IngestResult,
    ResolvedTarget,
    RewriteHtmlRequest,
    RewriteHtmlResponse,
    StoredAsset,
    ValidatedAsset,
)

__all__ = [
    "DiscoverRequest",
    "DiscoverResponse",
    "FetchOutcome",
    "ImageRequest",
    "IngestRequest",
    "IngestResponse",
    "IngestResult",
    "ResolvedTarget",
    "RewriteHtmlRequest",
    "RewriteHtmlResponse",
    "StoredAsset",
    "ValidatedAsset",
]
