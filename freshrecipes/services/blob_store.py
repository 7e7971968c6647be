"""Durable blob store backends."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Protocol, Tuple

from google.api_core.exceptions import PreconditionFailed

from freshrecipes.config import settings
from freshrecipes.services.firebase_admin_init import get_storage_bucket
from freshrecipes.utils.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


class BlobStore(Protocol):
    """Contract for a public, overwrite-safe object store."""

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under `key` and return the public URL."""
        ...

    async def exists(self, key: str) -> Optional[str]:
        """Return the public URL if `key` already exists, else None."""
        ...

    async def check(self) -> None:
        """Raise StorageUnavailable if the backend cannot be used."""
        ...


class MemoryBlobStore:
    """In-process blob store for local development and tests."""

    def __init__(self, public_base_url: str = ""):
        self.public_base_url = public_base_url.rstrip("/")
        self._objects: Dict[str, Tuple[bytes, str]] = {}
        self.put_count = 0

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/blobs/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.put_count += 1
        # setdefault keeps the first write; identical keys mean identical bytes
        self._objects.setdefault(key, (bytes(data), content_type))
        return self.public_url(key)

    async def exists(self, key: str) -> Optional[str]:
        return self.public_url(key) if key in self._objects else None

    async def check(self) -> None:
        return None

    def get(self, key: str) -> Optional[Tuple[bytes, str]]:
        """Return (bytes, content_type) for a stored key."""
        return self._objects.get(key)

    def clear(self) -> None:
        self._objects.clear()
        self.put_count = 0


class FirebaseBlobStore:
    """
    Google Cloud Storage bucket accessed through the Firebase Admin SDK.

    Objects are written with a create-only precondition, so concurrent
    writers of the same key never overwrite each other; the loser's
    PreconditionFailed is treated as success. The bucket must grant public
    read (allUsers: objectViewer) for the returned URLs to resolve. Prepared
    pages load images with crossorigin="anonymous", and the /image redirect
    lands here, so the bucket also needs a CORS rule allowing GET from the
    site origins (gsutil cors set), or the browser drops the image.
    """

    def __init__(self, bucket_name: Optional[str], public_base_url: Optional[str] = None):
        self.bucket_name = bucket_name
        self.public_base_url = (public_base_url or "").rstrip("/")
        self._bucket = None

    @property
    def bucket(self):
        """Get or create the bucket handle (lazy initialization)."""
        if not self.bucket_name:
            raise StorageUnavailable("STORAGE_BUCKET is not configured")
        if self._bucket is None:
            self._bucket = get_storage_bucket(self.bucket_name)
        return self._bucket

    def public_url(self, key: str, blob=None) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if blob is not None:
            return blob.public_url
        return f"https://storage.googleapis.com/{self.bucket_name}/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        bucket = self.bucket

        def _upload() -> str:
            blob = bucket.blob(key)
            blob.cache_control = IMMUTABLE_CACHE_CONTROL
            try:
                blob.upload_from_string(data, content_type=content_type, if_generation_match=0)
            except PreconditionFailed:
                logger.info("Blob already written by a concurrent request", extra={"key": key})
            return self.public_url(key, blob)

        return await asyncio.to_thread(_upload)

    async def exists(self, key: str) -> Optional[str]:
        bucket = self.bucket

        def _lookup() -> Optional[str]:
            blob = bucket.get_blob(key)
            return self.public_url(key, blob) if blob is not None else None

        return await asyncio.to_thread(_lookup)

    async def check(self) -> None:
        try:
            bucket = self.bucket
            await asyncio.to_thread(lambda: list(bucket.list_blobs(max_results=1)))
        except StorageUnavailable:
            raise
        except Exception as e:
            raise StorageUnavailable(f"Bucket check failed: {e}") from e


def create_blob_store() -> BlobStore:
    """Create the configured blob store backend."""
    if settings.storage_backend == "firebase":
        return FirebaseBlobStore(settings.storage_bucket, settings.storage_public_base_url)
    return MemoryBlobStore(settings.storage_public_base_url or "")
