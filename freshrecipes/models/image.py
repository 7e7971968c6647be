"""Image pipeline Pydantic models."""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ImageRequest(BaseModel):
    """A single inbound request to re-host a remote image."""

    model_config = ConfigDict(frozen=True)

    raw_url: str = Field(..., description="Image URL as found in model output")
    referer_hint: Optional[str] = Field(None, description="Referer to send for hotlink-protected origins")


class ResolvedTarget(BaseModel):
    """URL that passed the SSRF guard."""

    model_config = ConfigDict(frozen=True)

    scheme: str = Field(..., description="'http' or 'https'")
    host: str = Field(..., description="Lowercased hostname or IP literal")
    port: Optional[int] = Field(None, description="Explicit non-default port")
    normalized_url: str = Field(..., description="Normalized URL without fragment")


class FetchOutcome(BaseModel):
    """Successful (2xx) upstream response with its fully received body."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Final URL after redirects")
    status_code: int
    declared_content_type: Optional[str] = None
    body: bytes = Field(..., repr=False)


class ValidatedAsset(BaseModel):
    """Bytes that passed the size cap and content type checks."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., repr=False)
    content_type: str
    byte_length: int
    source_url: Optional[str] = None


class StoredAsset(BaseModel):
    """Asset persisted under its content-addressed key."""

    model_config = ConfigDict(frozen=True)

    content_hash: str = Field(..., description="SHA-256 hex digest of the bytes")
    extension: str
    storage_key: str = Field(..., description="images/<hash>.<ext>")
    public_url: str
    byte_length: int
    content_type: str


# -----------------------
# API payloads
# -----------------------


class IngestRequest(BaseModel):
    """Request model for batch image ingestion."""

    urls: List[str] = Field(..., description="Image URLs to re-host")
    referer: Optional[str] = Field(None, description="Optional Referer sent with every fetch")


class IngestResult(BaseModel):
    """Per-URL outcome of batch ingestion."""

    url: str
    ok: bool
    asset: Optional[StoredAsset] = None
    error: Optional[str] = Field(None, description="Failure kind, e.g. 'BlockedHost'")


class IngestResponse(BaseModel):
    """Response model for batch image ingestion."""

    results: List[IngestResult]


class RewriteHtmlRequest(BaseModel):
    """Request model for rewriting model-generated HTML."""

    html: str
    ensure_image: bool = Field(False, description="Insert a hero image when the page has none")


class RewriteHtmlResponse(BaseModel):
    """Rewritten HTML plus the image sources that were found."""

    html: str
    images: List[str] = Field(default_factory=list)


class DiscoverRequest(BaseModel):
    """Request model for discovering real images on a recipe source page."""

    page_url: str = Field(..., description="Recipe page the model cited as its source")
    max_images: Optional[int] = Field(None, ge=1, le=20, description="Images to re-host, defaults to settings")


class DiscoverResponse(BaseModel):
    """Candidates found on the page and the ones that were re-hosted."""

    page_url: str
    candidates: List[str] = Field(default_factory=list)
    results: List[IngestResult] = Field(default_factory=list)
