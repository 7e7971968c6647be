"""Bounded remote fetcher for untrusted image URLs."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

import httpx

from freshrecipes.config import settings
from freshrecipes.models.image import FetchOutcome, ResolvedTarget
from freshrecipes.services.url_guard import Resolver, ensure_public_address, resolve
from freshrecipes.utils.exceptions import (
    InvalidUrl,
    PayloadTooLarge,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnreachable,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; FreshRecipesBot/1.0; +https://freshrecipes.io)"
IMAGE_ACCEPT = "image/avif,image/webp,image/png,image/jpeg,image/gif;q=0.9,image/*;q=0.8"
REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})
CHUNK_SIZE = 64 * 1024


class ImageFetcher:
    """
    Fetches a single image under hard resource bounds.

    - One wall-clock budget covers DNS checks, every redirect hop and the body.
    - Redirects are followed manually; each hop goes back through the guard.
    - The body is streamed and counted; the cap is enforced on observed bytes.
    """

    def __init__(
        self,
        max_bytes: Optional[int] = None,
        timeout: Optional[float] = None,
        max_redirects: Optional[int] = None,
        verify_dns: Optional[bool] = None,
        resolver: Optional[Resolver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.max_bytes = max_bytes if max_bytes is not None else settings.image_max_bytes
        self.timeout = timeout if timeout is not None else settings.image_fetch_timeout
        self.max_redirects = max_redirects if max_redirects is not None else settings.image_max_redirects
        self.verify_dns = verify_dns if verify_dns is not None else settings.image_verify_dns
        self._resolver = resolver
        self._transport = transport

    async def fetch(
        self,
        target: ResolvedTarget,
        referer_hint: Optional[str] = None,
        accept: Optional[str] = None,
    ) -> FetchOutcome:
        """
        Fetch `target` and return its fully received, size-capped body.

        Args:
            target: URL that already passed the guard
            referer_hint: Referer to send, only when explicitly supplied
            accept: Accept header override, defaults to image types

        Returns:
            FetchOutcome for a 2xx response

        Raises:
            UpstreamTimeout: Wall-clock budget exceeded
            UpstreamUnreachable: DNS/connection failure
            UpstreamError: Non-2xx status or too many redirects
            PayloadTooLarge: Body exceeded the byte cap
            GuardError: A redirect hop pointed at a disallowed URL
        """
        try:
            return await asyncio.wait_for(self._fetch(target, referer_hint, accept), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamTimeout(
                f"Fetch exceeded {self.timeout}s", url=target.normalized_url
            ) from e

    async def _fetch(
        self, target: ResolvedTarget, referer_hint: Optional[str], accept: Optional[str]
    ) -> FetchOutcome:
        headers = build_request_headers(referer_hint, accept)
        current = target
        last_status: Optional[int] = None

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=False,
            trust_env=False,
            transport=self._transport,
        ) as client:
            for hop in range(self.max_redirects + 1):
                if self.verify_dns:
                    await ensure_public_address(current.host, self._resolver)

                try:
                    async with client.stream("GET", current.normalized_url, headers=headers) as response:
                        if response.status_code in REDIRECT_STATUS_CODES:
                            last_status = response.status_code
                            current = self._next_hop(current, response)
                            logger.debug(
                                "Following redirect",
                                extra={"hop": hop + 1, "status_code": last_status, "location": current.normalized_url},
                            )
                            continue

                        if not response.is_success:
                            raise UpstreamError(
                                f"Upstream returned status {response.status_code}",
                                url=current.normalized_url,
                                status=response.status_code,
                            )

                        body = await self._read_capped(response, current.normalized_url)
                        return FetchOutcome(
                            url=current.normalized_url,
                            status_code=response.status_code,
                            declared_content_type=response.headers.get("content-type"),
                            body=body,
                        )
                except httpx.TimeoutException as e:
                    raise UpstreamTimeout(f"Fetch timed out: {e}", url=current.normalized_url) from e
                except httpx.InvalidURL as e:
                    raise InvalidUrl(f"Invalid URL: {e}", url=current.normalized_url) from e
                except httpx.HTTPError as e:
                    raise UpstreamUnreachable(f"Failed to fetch image: {e}", url=current.normalized_url) from e

        raise UpstreamError(
            f"Too many redirects (max {self.max_redirects})",
            url=target.normalized_url,
            status=last_status,
        )

    def _next_hop(self, current: ResolvedTarget, response: httpx.Response) -> ResolvedTarget:
        location = response.headers.get("location")
        if not location:
            raise UpstreamError(
                "Redirect without Location header",
                url=current.normalized_url,
                status=response.status_code,
            )
        try:
            return resolve(urljoin(current.normalized_url, location.strip()))
        except ValueError as e:
            # urljoin/urlsplit reject e.g. an unterminated IPv6 bracket
            raise InvalidUrl(f"Malformed redirect Location: {e}", url=current.normalized_url) from e

    async def _read_capped(self, response: httpx.Response, url: str) -> bytes:
        """Read the streamed body, aborting the moment it exceeds max_bytes."""
        declared_length = response.headers.get("content-length", "").strip()
        if declared_length.isdigit() and int(declared_length) > self.max_bytes:
            raise PayloadTooLarge(
                f"Declared Content-Length {declared_length} exceeds {self.max_bytes} bytes",
                url=url,
            )

        buffer = bytearray()
        async for chunk in response.aiter_bytes(chunk_size=CHUNK_SIZE):
            if len(buffer) + len(chunk) > self.max_bytes:
                raise PayloadTooLarge(f"Body exceeds {self.max_bytes} bytes", url=url)
            buffer.extend(chunk)
        return bytes(buffer)


def build_request_headers(referer_hint: Optional[str] = None, accept: Optional[str] = None) -> Dict[str, str]:
    """
    Build outbound headers.

    Only a fixed UA and Accept preferences are sent; no cookies or caller
    headers are ever forwarded. Referer is included only when explicitly
    supplied as an http(s) URL.
    """
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": accept or IMAGE_ACCEPT,
        "Accept-Encoding": "identity",
    }
    referer = sanitize_referer(referer_hint)
    if referer:
        headers["Referer"] = referer
    return headers


def sanitize_referer(referer_hint: Optional[str]) -> Optional[str]:
    """Return the referer without fragment or credentials, or None if unusable."""
    if not referer_hint:
        return None
    value = referer_hint.strip()
    if any(ch in value for ch in "\r\n\x00"):
        return None
    try:
        parts = urlsplit(value)
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        return None
    netloc = parts.netloc.rsplit("@", 1)[-1]
    return urlunsplit((parts.scheme.lower(), netloc, parts.path or "/", parts.query, ""))
