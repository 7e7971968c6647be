"""
URL normalization and SSRF guard for remote image URLs.

`resolve` is pure: it parses the URL, unwraps at most one level of proxy
nesting and rejects anything that is not a public http(s) target based on
the literal host string. `ensure_public_address` is the post-DNS re-check
the fetcher runs before connecting to each hop.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
import socket
from typing import Awaitable, Callable, List, Optional, Union
from urllib.parse import parse_qs, unquote, urlsplit, urlunsplit

from freshrecipes.models.image import ResolvedTarget
from freshrecipes.utils.exceptions import (
    BlockedHost,
    InvalidUrl,
    UnsupportedScheme,
    UpstreamUnreachable,
)

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Resolver = Callable[[str], Awaitable[List[str]]]

ALLOWED_SCHEMES = frozenset({"http", "https"})
DEFAULT_PORTS = {"http": 80, "https": 443}
MAX_URL_LENGTH = 4096

BLOCKED_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"})
BLOCKED_HOST_SUFFIXES = (".localhost", ".local", ".localdomain", ".internal", ".lan", ".home", ".intranet")

# Ranges not covered by ipaddress' is_private/is_reserved flags
EXTRA_BLOCKED_NETWORKS = (
    ipaddress.ip_network("100.64.0.0/10"),  # carrier-grade NAT
    ipaddress.ip_network("0.0.0.0/8"),
)

# Path -> query parameter of proxy endpoints whose target we unwrap once.
# Covers this service and the legacy Next.js/FastAPI routes.
PROXY_QUERY_PARAMS = {
    "/image": "target",
    "/api/img": "u",
    "/api/proxy": "url",
    "/proxy_image": "url",
}
CLOUDINARY_FETCH_MARKER = "/image/fetch/"

_NUMERIC_HOST_RE = re.compile(r"^(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]+|[0-9]+)){0,3}$")
_FORBIDDEN_CHARS_RE = re.compile(r"[\x00-\x20\x7f\\]")
_ENCODED_SCHEME_RE = re.compile(r"^https?%3a", re.IGNORECASE)


def resolve(raw_url: str) -> ResolvedTarget:
    """
    Validate a candidate image URL without touching the network.

    Args:
        raw_url: URL as found in model output

    Returns:
        ResolvedTarget for a public http(s) URL

    Raises:
        InvalidUrl: Unparsable, credentials, bad port, or doubly nested proxy URL
        UnsupportedScheme: Scheme other than http/https
        BlockedHost: Loopback, link-local, private, reserved or internal host
    """
    url = _clean(raw_url)
    inner = unwrap_proxy_url(url)
    if inner is not None:
        logger.debug("Unwrapped nested proxy URL", extra={"outer": url[:200], "inner": inner[:200]})
        url = _clean(inner)
        if unwrap_proxy_url(url) is not None:
            raise InvalidUrl("Proxy URL nested more than one level", url=raw_url)
    return _resolve_direct(url)


def unwrap_proxy_url(url: str) -> Optional[str]:
    """Return the wrapped target if `url` is a known image proxy URL, else None."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None

    path = parts.path.rstrip("/") or "/"
    param = PROXY_QUERY_PARAMS.get(path)
    if param:
        values = parse_qs(parts.query).get(param)
        if values and _looks_like_http_url(values[0].strip()):
            return values[0].strip()

    if CLOUDINARY_FETCH_MARKER in parts.path and (parts.hostname or "").endswith("cloudinary.com"):
        rest = parts.path.split(CLOUDINARY_FETCH_MARKER, 1)[1]
        candidate = unquote(rest)
        if not _looks_like_http_url(candidate):
            # Drop the transformation segment, e.g. "f_auto,q_auto/"
            _, _, rest = rest.partition("/")
            candidate = unquote(rest)
        if _looks_like_http_url(candidate):
            return candidate
    return None


def parse_ip_literal(host: str) -> Optional[IPAddress]:
    """
    Parse a host as an IP address, including legacy numeric forms.

    Handles "127.0.0.1", "[::1]", "2130706433", "0x7f.1" and "0177.0.0.1",
    all of which resolve to loopback in common resolvers.
    """
    candidate = host.strip("[]")
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        pass

    if _NUMERIC_HOST_RE.match(candidate):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(candidate))
        except OSError:
            return None
    return None


def is_blocked_ip(ip: IPAddress) -> bool:
    """Check if an IP address is anything other than a public unicast address."""
    if isinstance(ip, ipaddress.IPv6Address):
        mapped = ip.ipv4_mapped or ip.sixtofour
        if mapped is not None:
            return is_blocked_ip(mapped)

    if (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    ):
        return True

    if isinstance(ip, ipaddress.IPv4Address):
        return any(ip in network for network in EXTRA_BLOCKED_NETWORKS)
    return False


def is_blocked_hostname(host: str) -> bool:
    """Check a (lowercased) hostname against the literal denylist."""
    if host in BLOCKED_HOSTNAMES:
        return True
    if any(host.endswith(suffix) for suffix in BLOCKED_HOST_SUFFIXES):
        return True
    ip = parse_ip_literal(host)
    return ip is not None and is_blocked_ip(ip)


async def system_resolver(host: str) -> List[str]:
    """Resolve a hostname to IP address strings using the event loop's resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


async def ensure_public_address(host: str, resolver: Optional[Resolver] = None) -> List[str]:
    """
    Resolve `host` and require every address to be public.

    Args:
        host: Hostname or IP literal from a ResolvedTarget
        resolver: Async resolver, defaults to the system resolver

    Returns:
        Resolved address strings

    Raises:
        BlockedHost: If any resolved address is non-public
        InvalidUrl: If the hostname cannot be IDNA-encoded
        UpstreamUnreachable: If resolution fails or returns nothing
    """
    literal = parse_ip_literal(host)
    if literal is not None:
        if is_blocked_ip(literal):
            raise BlockedHost(f"Address {literal} is not public", url=host)
        return [str(literal)]

    resolver = resolver or system_resolver
    try:
        addresses = await resolver(host)
    except UnicodeError as e:
        # IDNA encoding rejects empty or oversized labels ("a..example.com")
        raise InvalidUrl(f"Hostname cannot be encoded: {host}", url=host) from e
    except (socket.gaierror, OSError) as e:
        raise UpstreamUnreachable(f"DNS resolution failed for {host}: {e}", url=host) from e

    if not addresses:
        raise UpstreamUnreachable(f"DNS resolution returned no addresses for {host}", url=host)

    for address in addresses:
        try:
            ip = ipaddress.ip_address(address.split("%", 1)[0])
        except ValueError as e:
            raise UpstreamUnreachable(f"Unparsable address {address!r} for {host}", url=host) from e
        if is_blocked_ip(ip):
            logger.warning(
                "SSRF blocked after DNS resolution",
                extra={"host": host, "resolved_ip": address},
            )
            raise BlockedHost(f"{host} resolved to non-public address {address}", url=host)
    return addresses


# -----------------------
# Internals
# -----------------------


def _clean(raw_url: str) -> str:
    if not raw_url or not isinstance(raw_url, str):
        raise InvalidUrl("URL must be a non-empty string")

    url = raw_url.strip()
    if not url:
        raise InvalidUrl("URL must be a non-empty string")
    if len(url) > MAX_URL_LENGTH:
        raise InvalidUrl("URL is too long", url=url[:200])

    # A whole URL that was percent-encoded once (e.g. copied out of a query string)
    if _ENCODED_SCHEME_RE.match(url):
        url = unquote(url)

    if url.startswith("//"):
        url = "https:" + url
    if _FORBIDDEN_CHARS_RE.search(url):
        raise InvalidUrl("URL contains whitespace, control characters or backslashes", url=url[:200])
    return url


def _looks_like_http_url(value: str) -> bool:
    lowered = value.lower()
    return lowered.startswith("http://") or lowered.startswith("https://") or bool(_ENCODED_SCHEME_RE.match(value))


def _resolve_direct(url: str) -> ResolvedTarget:
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise InvalidUrl(f"Invalid URL format: {e}", url=url) from e

    scheme = parts.scheme.lower()
    if not scheme:
        raise InvalidUrl("URL has no scheme", url=url)
    if scheme not in ALLOWED_SCHEMES:
        raise UnsupportedScheme(f"URL scheme must be http or https, got: {scheme}", url=url)

    if "@" in parts.netloc:
        raise InvalidUrl("URL must not contain credentials", url=url)

    host = (parts.hostname or "").rstrip(".")
    if not host:
        raise InvalidUrl("URL must have a host", url=url)
    if "%" in host and ":" not in host:
        raise InvalidUrl("Percent-encoded hostnames are not allowed", url=url)
    if ":" in host and parse_ip_literal(host) is None:
        raise InvalidUrl("Malformed IPv6 literal", url=url)

    try:
        port = parts.port
    except ValueError as e:
        raise InvalidUrl(f"Invalid port: {e}", url=url) from e

    if is_blocked_hostname(host):
        raise BlockedHost(f"Host {host} is not allowed", url=url)

    if port == DEFAULT_PORTS[scheme]:
        port = None

    netloc_host = f"[{host}]" if ":" in host else host
    netloc = f"{netloc_host}:{port}" if port is not None else netloc_host
    normalized = urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))

    return ResolvedTarget(scheme=scheme, host=host, port=port, normalized_url=normalized)
