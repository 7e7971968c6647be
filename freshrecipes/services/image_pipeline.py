"""Remote image ingestion pipeline: guard, fetch, validate, store."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Union

from freshrecipes.config import settings
from freshrecipes.models.image import ImageRequest, IngestResult, StoredAsset, ValidatedAsset
from freshrecipes.services import image_validator, url_guard
from freshrecipes.services.asset_store import AssetStore
from freshrecipes.services.image_fetcher import ImageFetcher
from freshrecipes.utils.exceptions import ImagePipelineError, InternalError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOutcome:
    """Terminal result of one pipeline run."""

    result: Union[StoredAsset, ImagePipelineError]
    validated: Optional[ValidatedAsset] = None

    @property
    def ok(self) -> bool:
        return isinstance(self.result, StoredAsset)


class ImagePipeline:
    """
    Runs a single image request through every stage.

    Each stage raises a typed ImagePipelineError; `process` returns it as a
    value so the response policy can turn it into the fallback. Nothing is
    retried.
    """

    def __init__(
        self,
        fetcher: ImageFetcher,
        store: AssetStore,
        reject_placeholders: Optional[bool] = None,
    ):
        self.fetcher = fetcher
        self.store = store
        self.reject_placeholders = (
            reject_placeholders if reject_placeholders is not None else settings.image_reject_placeholders
        )

    async def process(self, request: ImageRequest) -> PipelineOutcome:
        """Run guard -> placeholder filter -> fetch -> validate -> store."""
        start_time = time.time()
        try:
            target = url_guard.resolve(request.raw_url)
            if self.reject_placeholders:
                image_validator.check_placeholder(target.normalized_url)
            outcome = await self.fetcher.fetch(target, request.referer_hint)
            validated = image_validator.validate(outcome)
            stored = await self.store.store(validated)
        except ImagePipelineError as e:
            if e.url is None:
                e.url = request.raw_url
            return PipelineOutcome(result=e)

        logger.info(
            "Image ingested",
            extra={
                "url": request.raw_url[:300],
                "storage_key": stored.storage_key,
                "byte_length": stored.byte_length,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return PipelineOutcome(result=stored, validated=validated)

    async def ingest_many(self, urls: List[str], referer: Optional[str] = None) -> List[IngestResult]:
        """Process several URLs concurrently; one failure never affects the others."""
        unique_urls = list(dict.fromkeys(url.strip() for url in urls if url and url.strip()))
        outcomes = await asyncio.gather(
            *(self.process(ImageRequest(raw_url=url, referer_hint=referer)) for url in unique_urls),
            return_exceptions=True,
        )

        results = []
        for url, outcome in zip(unique_urls, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Unexpected ingest failure: {outcome}", extra={"url": url[:300]}, exc_info=outcome)
                outcome = PipelineOutcome(result=InternalError(str(outcome), url=url))
            if outcome.ok:
                results.append(IngestResult(url=url, ok=True, asset=outcome.result))
            else:
                logger.warning(
                    f"Ingest failed: {outcome.result.kind}",
                    extra={"url": url[:300], "failure_kind": outcome.result.kind, "detail": outcome.result.message},
                )
                results.append(IngestResult(url=url, ok=False, error=outcome.result.kind))
        return results
