"""Content-addressable storage of validated images."""

import asyncio
import hashlib
import logging
import posixpath
from typing import Optional
from urllib.parse import urlsplit

from freshrecipes.config import settings
from freshrecipes.models.image import StoredAsset, ValidatedAsset
from freshrecipes.services.blob_store import BlobStore
from freshrecipes.utils.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

KEY_PREFIX = "images"
DEFAULT_EXTENSION = "bin"

CONTENT_TYPE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/avif": "avif",
}

URL_EXTENSIONS = {
    "png": "png",
    "jpg": "jpg",
    "jpeg": "jpg",
    "jpe": "jpg",
    "webp": "webp",
    "gif": "gif",
    "avif": "avif",
}


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of the bytes."""
    return hashlib.sha256(data).hexdigest()


def extension_for(content_type: str, source_url: Optional[str] = None) -> str:
    """
    Derive the file extension for an asset.

    Content type wins; the source URL path extension is used when the
    content type is ambiguous; otherwise a generic binary extension.
    """
    extension = CONTENT_TYPE_EXTENSIONS.get(content_type)
    if extension:
        return extension
    if source_url:
        path = urlsplit(source_url).path
        suffix = posixpath.splitext(path)[1].lstrip(".").lower()
        if suffix in URL_EXTENSIONS:
            return URL_EXTENSIONS[suffix]
    return DEFAULT_EXTENSION


def storage_key_for(digest: str, extension: str) -> str:
    """Deterministic key: images/<hash>.<ext>."""
    return f"{KEY_PREFIX}/{digest}.{extension}"


class AssetStore:
    """Hashes validated assets and writes them idempotently to a blob store."""

    def __init__(self, backend: BlobStore, timeout: Optional[float] = None):
        self.backend = backend
        self.timeout = timeout if timeout is not None else settings.storage_timeout

    async def store(self, asset: ValidatedAsset) -> StoredAsset:
        """
        Persist an asset under its content-addressed key.

        Args:
            asset: Validated image bytes

        Returns:
            StoredAsset with the backend's public URL

        Raises:
            StorageUnavailable: Backend unconfigured, failing, or too slow
        """
        digest = content_hash(asset.data)
        extension = extension_for(asset.content_type, asset.source_url)
        key = storage_key_for(digest, extension)

        try:
            public_url = await asyncio.wait_for(self._put_once(key, asset), timeout=self.timeout)
        except StorageUnavailable:
            raise
        except asyncio.TimeoutError as e:
            raise StorageUnavailable(f"Storage write timed out after {self.timeout}s", url=asset.source_url) from e
        except Exception as e:
            raise StorageUnavailable(f"Storage write failed: {e}", url=asset.source_url) from e

        return StoredAsset(
            content_hash=digest,
            extension=extension,
            storage_key=key,
            public_url=public_url,
            byte_length=asset.byte_length,
            content_type=asset.content_type,
        )

    async def _put_once(self, key: str, asset: ValidatedAsset) -> str:
        existing = await self.backend.exists(key)
        if existing:
            logger.info("Asset already stored", extra={"storage_key": key})
            return existing

        public_url = await self.backend.put(key, asset.data, asset.content_type)
        logger.info(
            "Asset stored",
            extra={"storage_key": key, "byte_length": asset.byte_length, "content_type": asset.content_type},
        )
        return public_url
