"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from freshrecipes.api.dependencies import get_blob_store, get_image_pipeline
from freshrecipes.main import app
from freshrecipes.middleware.rate_limit import limiter
from freshrecipes.services.asset_store import AssetStore
from freshrecipes.services.blob_store import MemoryBlobStore
from freshrecipes.services.image_discovery import ImageDiscovery
from freshrecipes.services.image_fetcher import ImageFetcher
from freshrecipes.services.image_pipeline import ImagePipeline

from image_fixtures import public_resolver

TEST_MAX_BYTES = 8 * 1024 * 1024


@pytest.fixture
def blob_store():
    """Fresh in-memory blob store."""
    return MemoryBlobStore()


@pytest.fixture
def fetcher():
    """Fetcher with production limits and a stub resolver (no real DNS)."""
    return ImageFetcher(
        max_bytes=TEST_MAX_BYTES,
        timeout=5.0,
        max_redirects=5,
        verify_dns=True,
        resolver=public_resolver,
    )


@pytest.fixture
def pipeline(fetcher, blob_store):
    """Image pipeline wired to the in-memory store."""
    return ImagePipeline(fetcher=fetcher, store=AssetStore(blob_store), reject_placeholders=True)


@pytest.fixture
def client(pipeline, blob_store):
    """Create test client with the pipeline and store overridden."""
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_image_pipeline] = lambda: pipeline
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_keys(monkeypatch):
    """Enable API key authentication for write routes."""
    from freshrecipes.config import settings

    monkeypatch.setattr(settings, "api_keys", "test-api-key-123")
    return "test-api-key-123"


@pytest.fixture
def discovery(pipeline):
    """Source page discovery with a stub resolver and a small page cap."""
    page_fetcher = ImageFetcher(
        max_bytes=64 * 1024,
        timeout=5.0,
        max_redirects=5,
        verify_dns=True,
        resolver=public_resolver,
    )
    return ImageDiscovery(pipeline=pipeline, page_fetcher=page_fetcher)
