"""End-to-end tests for the image pipeline and response policy."""

import hashlib

import pytest
from httpx import Response

from freshrecipes.models.image import ImageRequest, StoredAsset
from freshrecipes.services.response_policy import (
    FALLBACK_CACHE_CONTROL,
    FALLBACK_SVG,
    IMMUTABLE_CACHE_CONTROL,
    ResponsePolicy,
)
from freshrecipes.utils.exceptions import (
    BlockedHost,
    LooksLikePlaceholder,
    NotAnImage,
    PayloadTooLarge,
    UpstreamError,
)

from image_fixtures import HTML_CONTENT, JPEG_120KB, TINY_PNG


class TestProcess:
    """Scenarios from request to stored asset or typed failure."""

    @pytest.mark.asyncio
    async def test_happy_path_stores_content_addressed_asset(self, respx_mock, pipeline, blob_store):
        respx_mock.get("https://example.com/photo.jpg").mock(
            return_value=Response(200, content=JPEG_120KB, headers={"Content-Type": "image/jpeg"})
        )

        outcome = await pipeline.process(ImageRequest(raw_url="https://example.com/photo.jpg"))

        digest = hashlib.sha256(JPEG_120KB).hexdigest()
        assert outcome.ok
        assert isinstance(outcome.result, StoredAsset)
        assert outcome.result.storage_key == f"images/{digest}.jpg"
        assert outcome.result.byte_length == 120 * 1024
        assert blob_store.get(f"images/{digest}.jpg") == (JPEG_120KB, "image/jpeg")

        response = ResponsePolicy("redirect").respond(outcome.result)
        assert response.status_code == 302
        assert response.headers["location"] == f"/blobs/images/{digest}.jpg"
        assert response.headers["cache-control"] == IMMUTABLE_CACHE_CONTROL

    @pytest.mark.asyncio
    async def test_metadata_endpoint_never_fetched(self, respx_mock, pipeline, blob_store):
        outcome = await pipeline.process(ImageRequest(raw_url="http://169.254.169.254/latest/meta-data"))

        assert isinstance(outcome.result, BlockedHost)
        assert respx_mock.calls.call_count == 0
        assert blob_store.put_count == 0

    @pytest.mark.asyncio
    async def test_oversized_payload(self, respx_mock, pipeline, blob_store):
        respx_mock.get("https://example.com/huge.png").mock(
            return_value=Response(
                200, content=TINY_PNG + b"\x00" * (20 * 1024 * 1024), headers={"Content-Type": "image/png"}
            )
        )

        outcome = await pipeline.process(ImageRequest(raw_url="https://example.com/huge.png"))

        assert isinstance(outcome.result, PayloadTooLarge)
        assert blob_store.put_count == 0

    @pytest.mark.asyncio
    async def test_html_page_is_not_an_image(self, respx_mock, pipeline, blob_store):
        respx_mock.get("https://example.com/photo.jpg").mock(
            return_value=Response(200, content=HTML_CONTENT, headers={"Content-Type": "text/html"})
        )

        outcome = await pipeline.process(ImageRequest(raw_url="https://example.com/photo.jpg"))

        assert isinstance(outcome.result, NotAnImage)
        assert blob_store.put_count == 0

    @pytest.mark.asyncio
    async def test_upstream_404(self, respx_mock, pipeline, blob_store):
        respx_mock.get("https://example.com/gone.jpg").mock(return_value=Response(404))

        outcome = await pipeline.process(ImageRequest(raw_url="https://example.com/gone.jpg"))

        assert isinstance(outcome.result, UpstreamError)
        assert outcome.result.status == 404
        assert blob_store.put_count == 0

    @pytest.mark.asyncio
    async def test_placeholder_host_rejected_before_fetch(self, respx_mock, pipeline):
        outcome = await pipeline.process(ImageRequest(raw_url="https://picsum.photos/800/600"))

        assert isinstance(outcome.result, LooksLikePlaceholder)
        assert respx_mock.calls.call_count == 0

    @pytest.mark.asyncio
    async def test_error_carries_request_url(self, pipeline):
        outcome = await pipeline.process(ImageRequest(raw_url="ftp://example.com/a.jpg"))
        assert outcome.result.url == "ftp://example.com/a.jpg"


class TestIngestMany:
    @pytest.mark.asyncio
    async def test_failures_are_independent(self, respx_mock, pipeline):
        respx_mock.get("https://example.com/a.png").mock(
            return_value=Response(200, content=TINY_PNG, headers={"Content-Type": "image/png"})
        )

        results = await pipeline.ingest_many(
            ["https://example.com/a.png", "http://localhost/b.png", "https://example.com/a.png"]
        )

        assert [r.url for r in results] == ["https://example.com/a.png", "http://localhost/b.png"]
        assert results[0].ok and results[0].asset.content_type == "image/png"
        assert not results[1].ok
        assert results[1].error == "BlockedHost"
        assert results[1].asset is None

    @pytest.mark.asyncio
    async def test_untyped_exception_becomes_internal_error(self, respx_mock, pipeline, monkeypatch):
        respx_mock.get("https://example.com/a.png").mock(
            return_value=Response(200, content=TINY_PNG, headers={"Content-Type": "image/png"})
        )
        original = pipeline.process

        async def flaky_process(request):
            if request.raw_url.endswith("boom.png"):
                raise RuntimeError("unexpected")
            return await original(request)

        monkeypatch.setattr(pipeline, "process", flaky_process)

        results = await pipeline.ingest_many(["https://example.com/a.png", "https://example.com/boom.png"])

        assert results[0].ok
        assert not results[1].ok
        assert results[1].error == "InternalError"


class TestResponsePolicy:
    def test_fallback_for_every_failure(self):
        response = ResponsePolicy("redirect").respond(NotAnImage("text/html", url="https://example.com/x"))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert response.headers["cache-control"] == FALLBACK_CACHE_CONTROL
        assert response.headers["x-image-fallback"] == "NotAnImage"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.body == FALLBACK_SVG

    def test_fallback_body_has_no_diagnostics(self):
        response = ResponsePolicy().respond(UpstreamError("secret detail", url="https://internal.example", status=500))
        assert b"secret detail" not in response.body
        assert b"internal.example" not in response.body

    def test_inline_mode_serves_bytes(self):
        asset = StoredAsset(
            content_hash="abc",
            extension="png",
            storage_key="images/abc.png",
            public_url="/blobs/images/abc.png",
            byte_length=len(TINY_PNG),
            content_type="image/png",
        )

        response = ResponsePolicy("inline").respond(asset, data=TINY_PNG)

        assert response.status_code == 200
        assert response.body == TINY_PNG
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == IMMUTABLE_CACHE_CONTROL
