"""Rate limiting for write routes using slowapi."""

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address

from freshrecipes.config import settings


def get_api_key_for_rate_limit(request: Request) -> str:
    """Rate limit per API key when one is sent, else per client address."""
    api_key = request.headers.get("X-API-Key")
    if not api_key:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            api_key = auth_header[7:]
    return api_key or get_remote_address(request)


# Initialize limiter
limiter = Limiter(
    key_func=get_api_key_for_rate_limit,
    default_limits=[f"{settings.rate_limit_per_hour}/hour"],
    storage_uri="memory://",  # In-memory storage
)


def get_rate_limit_exceeded_handler():
    """Get rate limit exceeded handler."""
    return _rate_limit_exceeded_handler


def rate_limit_dependency(request: Request) -> None:
    """
    Rate limit dependency for FastAPI.

    The image GET route must never use this: it always answers with an image.

    Raises:
        RateLimitExceeded: If rate limit is exceeded
    """
    # slowapi has no public "hit" helper; this raises RateLimitExceeded when the limit is hit
    limiter._check_request_limit(request, endpoint_func=None)
