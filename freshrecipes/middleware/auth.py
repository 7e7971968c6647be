"""API key authentication for write routes."""

from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from freshrecipes.config import settings
from freshrecipes.utils.exceptions import AuthenticationError

security = HTTPBearer(auto_error=False)


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Verify API key from header.

    Authentication is disabled when no API keys are configured.

    Returns:
        API key string if valid, None when authentication is disabled

    Raises:
        AuthenticationError: If API key is missing or invalid
    """
    valid_keys = settings.valid_api_keys
    if not valid_keys:
        return None

    # Check X-API-Key header first, fallback to Authorization header
    api_key = x_api_key
    if not api_key and authorization:
        api_key = authorization.credentials

    if not api_key:
        raise AuthenticationError("Missing API key. Provide X-API-Key header or Authorization Bearer token.")
    if api_key not in valid_keys:
        raise AuthenticationError("Invalid API key.")

    return api_key
