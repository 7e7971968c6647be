"""Request ID generation and management."""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable to store request ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Inbound IDs from a trusted proxy are reused only if they look sane
_INBOUND_ID_RE = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())


def resolve_request_id(inbound: Optional[str]) -> str:
    """Reuse an inbound X-Request-ID when well-formed, else generate one."""
    if inbound and _INBOUND_ID_RE.match(inbound):
        return inbound
    return generate_request_id()


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_var.get("")


def set_request_id(request_id: str) -> None:
    """Set request ID in context."""
    request_id_var.set(request_id)
