"""Helpers for preparing model-generated recipe HTML for display."""

import json
import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import quote

from bs4 import BeautifulSoup

from freshrecipes.config import settings

logger = logging.getLogger(__name__)

_FENCE_HTML_RE = re.compile(r"^```html\s*([\s\S]*?)\s*```$", re.IGNORECASE)
_FENCE_ANY_RE = re.compile(r"^```\s*([\s\S]*?)\s*```$")

HERO_STYLE = "width:100%;height:auto;border-radius:12px;display:block;margin:16px 0"


def to_pure_html(text: str) -> str:
    """Strip markdown fences and {"html": ...} wrappers the model sometimes returns."""
    out = (text or "").strip()
    if out.startswith("{"):
        try:
            data = json.loads(out)
            if isinstance(data, dict) and isinstance(data.get("html"), str):
                out = data["html"].strip()
        except json.JSONDecodeError:
            pass

    match = _FENCE_HTML_RE.match(out) or _FENCE_ANY_RE.match(out)
    if match:
        return match.group(1).strip()
    return out


def is_absolute_http_url(value: str) -> bool:
    lowered = value.strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def extract_image_sources(html: str) -> List[str]:
    """Return every absolute http(s) <img src>, de-duplicated in document order."""
    soup = BeautifulSoup(html or "", "html.parser")
    sources = []
    for img in soup.find_all("img"):
        src = (img.get("src") or "").strip()
        if is_absolute_http_url(src):
            sources.append(src)
    return list(dict.fromkeys(sources))


def proxied_image_url(src: str, route_path: Optional[str] = None, referer: Optional[str] = None) -> str:
    """Build the image route URL for a remote source."""
    route = route_path or settings.image_route_path
    url = f"{route}?target={quote(src, safe='')}"
    if referer:
        url += f"&referer={quote(referer, safe='')}"
    return url


def rewrite_image_sources(soup: BeautifulSoup, route_path: Optional[str] = None) -> List[str]:
    """
    Point every absolute <img src> at the image route, in place.

    srcset/sizes are dropped so the browser cannot bypass the route.

    Returns:
        Original sources that were rewritten
    """
    rewritten = []
    for img in soup.find_all("img"):
        src = (img.get("src") or "").strip()
        if not is_absolute_http_url(src):
            continue
        img["src"] = proxied_image_url(src, route_path)
        for attr in ("srcset", "sizes"):
            if img.has_attr(attr):
                del img[attr]
        rewritten.append(src)

    for source in soup.select("picture > source"):
        source.decompose()
    return list(dict.fromkeys(rewritten))


def add_no_referrer(soup: BeautifulSoup) -> None:
    """Add <meta name="referrer" content="no-referrer"> and per-image referrer attributes, in place."""
    head = soup.find("head")
    if head is None:
        head = soup.new_tag("head")
        if soup.html is not None:
            soup.html.insert(0, head)
        else:
            soup.insert(0, head)

    if head.find("meta", attrs={"name": re.compile("^referrer$", re.IGNORECASE)}) is None:
        head.insert(0, soup.new_tag("meta", attrs={"name": "referrer", "content": "no-referrer"}))

    for img in soup.find_all("img"):
        img["referrerpolicy"] = "no-referrer"
        img["crossorigin"] = "anonymous"


def ensure_at_least_one_image(soup: BeautifulSoup, hero_src: Optional[str] = None) -> bool:
    """
    Insert a hero image when the page has none, in place.

    Placed after the first <h1>, else at the start of <body>, else at the top.

    Returns:
        True if an image was inserted
    """
    if soup.find("img") is not None:
        return False

    hero = soup.new_tag("img", attrs={"src": hero_src or settings.image_route_path, "alt": "", "style": HERO_STYLE})
    heading = soup.find("h1")
    if heading is not None:
        heading.insert_after(hero)
    elif soup.body is not None:
        soup.body.insert(0, hero)
    else:
        soup.insert(0, hero)
    return True


def prepare_recipe_html(
    raw: str,
    ensure_image: bool = False,
    route_path: Optional[str] = None,
) -> Tuple[str, List[str]]:
    """
    Clean model output and route its images through the image endpoint.

    Args:
        raw: Model output (HTML, fenced HTML or {"html": ...} JSON)
        ensure_image: Insert a hero image when there is none
        route_path: Image route path, defaults to settings

    Returns:
        Tuple of (html, original image sources)
    """
    soup = BeautifulSoup(to_pure_html(raw), "html.parser")
    images = rewrite_image_sources(soup, route_path)
    if ensure_image:
        ensure_at_least_one_image(soup, route_path)
    add_no_referrer(soup)

    logger.info("Prepared recipe HTML", extra={"image_count": len(images), "ensure_image": ensure_image})
    return str(soup), images
