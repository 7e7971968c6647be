"""Tests for health endpoints."""

from fastapi.testclient import TestClient

from freshrecipes.api.dependencies import get_blob_store
from freshrecipes.main import app
from freshrecipes.middleware.performance import metrics
from freshrecipes.services.blob_store import FirebaseBlobStore


def test_health_check(client: TestClient):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_readiness_check(client: TestClient):
    """Test readiness check endpoint."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert "storage_backend" in data
    assert data["delivery_mode"] in ("redirect", "inline")


def test_metrics_count_image_fallbacks(client: TestClient):
    """Fallback image responses are counted separately from errors."""
    metrics.reset()
    client.get("/image")

    response = client.get("/health/metrics")
    data = response.json()
    assert data["status"] == "ok"
    assert data["image_fallbacks"] == 1
    assert data["errors"] == 0


def test_storage_check_ok(client: TestClient):
    """In-memory store is always available."""
    response = client.get("/health/storage")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_storage_check_unconfigured(client: TestClient):
    """Unconfigured bucket reports a reason without failing the request."""
    app.dependency_overrides[get_blob_store] = lambda: FirebaseBlobStore(None)

    response = client.get("/health/storage")
    assert response.status_code == 200
    assert response.json() == {"ok": False, "reason": "storage_unavailable"}


def test_root(client: TestClient):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "FreshRecipes Image API"
