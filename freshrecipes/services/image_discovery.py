"""
Find real images on a recipe source page.

Model output often cites the page a recipe came from while the image URLs
it invents are dead. Candidates are collected from the page in priority
order (schema.org Recipe.image, og:image, twitter:image, inline <img>),
made absolute against the page URL and then run through the image
pipeline until enough of them turn out to be real images.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from freshrecipes.config import settings
from freshrecipes.models.image import DiscoverResponse, FetchOutcome, IngestResult
from freshrecipes.services import url_guard
from freshrecipes.services.html_tools import is_absolute_http_url
from freshrecipes.services.image_fetcher import ImageFetcher
from freshrecipes.services.image_pipeline import ImagePipeline
from freshrecipes.utils.exceptions import NotAPage

logger = logging.getLogger(__name__)

PAGE_ACCEPT = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.1"
MIN_CANDIDATE_LENGTH = 9

_CHARSET_RE = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)


def extract_image_candidates(html: str, base_url: str, limit: Optional[int] = None) -> List[str]:
    """
    Collect image URLs from a page, best sources first.

    Args:
        html: Page markup
        base_url: Final page URL, used to absolutize relative sources
        limit: Maximum candidates to return

    Returns:
        Absolute http(s) URLs, de-duplicated, in priority order
    """
    limit = limit if limit is not None else settings.discovery_max_candidates
    soup = BeautifulSoup(html or "", "html.parser")

    raw: List[str] = []
    raw.extend(_jsonld_recipe_images(soup))
    for meta in soup.find_all("meta", attrs={"property": re.compile(r"^og:image(:url|:secure_url)?$", re.I)}):
        raw.append(meta.get("content") or "")
    for attr in ("name", "property"):
        for meta in soup.find_all("meta", attrs={attr: re.compile(r"^twitter:image(:src)?$", re.I)}):
            raw.append(meta.get("content") or "")
    for img in soup.find_all("img"):
        raw.append(img.get("src") or "")

    candidates: List[str] = []
    for value in raw:
        value = value.strip()
        if len(value) < MIN_CANDIDATE_LENGTH or value.lower().startswith("data:"):
            continue
        try:
            absolute = urljoin(base_url, value)
        except ValueError:
            continue
        if is_absolute_http_url(absolute) and absolute not in candidates:
            candidates.append(absolute)
        if len(candidates) >= limit:
            break
    return candidates


def _jsonld_recipe_images(soup: BeautifulSoup) -> Iterator[str]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = script.string or script.get_text() or ""
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Skipping unparsable JSON-LD block")
            continue
        for node in _jsonld_nodes(data):
            if _is_recipe(node):
                yield from _image_urls(node.get("image"))


def _jsonld_nodes(data: Any) -> Iterator[dict]:
    if isinstance(data, list):
        for item in data:
            yield from _jsonld_nodes(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _jsonld_nodes(data["@graph"])


def _is_recipe(node: dict) -> bool:
    types = node.get("@type")
    if isinstance(types, str):
        types = [types]
    return isinstance(types, list) and any(isinstance(t, str) and t.lower() == "recipe" for t in types)


def _image_urls(value: Any) -> Iterator[str]:
    # schema.org image is a URL, an ImageObject, or a list of either
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        url = value.get("url") or value.get("contentUrl")
        if isinstance(url, str):
            yield url
    elif isinstance(value, list):
        for item in value:
            yield from _image_urls(item)


def decode_page(outcome: FetchOutcome) -> str:
    """Decode a fetched page using its declared charset, falling back to UTF-8."""
    encoding = "utf-8"
    match = _CHARSET_RE.search(outcome.declared_content_type or "")
    if match:
        encoding = match.group(1)
    try:
        return outcome.body.decode(encoding, errors="replace")
    except LookupError:
        return outcome.body.decode("utf-8", errors="replace")


class ImageDiscovery:
    """Fetches a source page and re-hosts the real images it references."""

    def __init__(self, pipeline: ImagePipeline, page_fetcher: Optional[ImageFetcher] = None):
        self.pipeline = pipeline
        self.page_fetcher = page_fetcher or ImageFetcher(max_bytes=settings.discovery_max_page_bytes)

    async def fetch_page(self, page_url: str) -> FetchOutcome:
        """
        Fetch a source page through the same guard and bounds as images.

        Raises:
            GuardError: The page URL is not a public http(s) URL
            UpstreamError: Fetch failed (timeout, status, size cap)
            NotAPage: The response is not HTML
        """
        target = url_guard.resolve(page_url)
        outcome = await self.page_fetcher.fetch(target, accept=PAGE_ACCEPT)
        media_type = (outcome.declared_content_type or "").split(";", 1)[0].strip().lower()
        if media_type not in ("text/html", "application/xhtml+xml"):
            raise NotAPage(f"Source page returned {media_type or 'no content type'}", url=outcome.url)
        return outcome

    async def discover(
        self,
        page_url: str,
        max_images: Optional[int] = None,
        referer: Optional[str] = None,
    ) -> DiscoverResponse:
        """
        Re-host up to `max_images` real images found on `page_url`.

        Candidates are tried in priority order, in batches no larger than
        the number of images still needed. Failed candidates are reported
        alongside the successful ones.
        """
        wanted = max_images or settings.discovery_max_images
        page = await self.fetch_page(page_url)
        candidates = extract_image_candidates(decode_page(page), page.url)

        logger.info(
            "Source page image candidates",
            extra={"url": page.url[:300], "candidate_count": len(candidates)},
        )

        results: List[IngestResult] = []
        found = 0
        remaining = list(candidates)
        while remaining and found < wanted:
            batch, remaining = remaining[: wanted - found], remaining[wanted - found :]
            batch_results = await self.pipeline.ingest_many(batch, referer=referer or page.url)
            found += sum(1 for result in batch_results if result.ok)
            results.extend(batch_results)

        return DiscoverResponse(page_url=page.url, candidates=candidates, results=results)
