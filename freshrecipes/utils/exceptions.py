"""Custom exception classes."""

from typing import Optional


class FreshRecipesException(Exception):
    """Base exception for FreshRecipes application."""

    pass


class AuthenticationError(FreshRecipesException):
    """Raised when authentication fails."""

    pass


class ValidationError(FreshRecipesException):
    """Raised when API input validation fails."""

    pass


# =============================================================================
# Image pipeline failures
# =============================================================================


class ImagePipelineError(FreshRecipesException):
    """
    Base class for every terminal failure of the image pipeline.

    `kind` is a stable, non-diagnostic name that is safe to expose to
    callers (e.g. in a response header). The message is for operators only.
    """

    kind = "ImagePipelineError"

    def __init__(self, message: str = "", url: Optional[str] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.url = url


class GuardError(ImagePipelineError):
    """Raised when a URL is rejected before any network access."""

    kind = "GuardError"


class InvalidUrl(GuardError):
    """Raised when a URL cannot be parsed or is a nested proxy URL."""

    kind = "InvalidUrl"


class UnsupportedScheme(GuardError):
    """Raised when a URL uses anything other than http or https."""

    kind = "UnsupportedScheme"


class BlockedHost(GuardError):
    """Raised when a host is loopback, link-local, private or reserved."""

    kind = "BlockedHost"


class FetchError(ImagePipelineError):
    """Raised when the remote fetch fails."""

    kind = "FetchError"


class UpstreamTimeout(FetchError):
    """Raised when the fetch exceeds its wall-clock budget."""

    kind = "UpstreamTimeout"


class UpstreamUnreachable(FetchError):
    """Raised on DNS or connection failures."""

    kind = "UpstreamUnreachable"


class UpstreamError(FetchError):
    """Raised when the origin answers with a non-2xx status."""

    kind = "UpstreamError"

    def __init__(self, message: str = "", url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, url=url)
        self.status = status


class PayloadTooLarge(FetchError):
    """Raised as soon as the received body exceeds the byte cap."""

    kind = "PayloadTooLarge"


class ContentValidationError(ImagePipelineError):
    """Raised when fetched content is not an acceptable image."""

    kind = "ContentValidationError"


class NotAnImage(ContentValidationError):
    """Raised when declared or sniffed content type is not an allowed image."""

    kind = "NotAnImage"


class LooksLikePlaceholder(ContentValidationError):
    """Raised when the source URL matches a known placeholder/stock host."""

    kind = "LooksLikePlaceholder"


class NotAPage(ContentValidationError):
    """Raised when a source page URL does not return HTML."""

    kind = "NotAPage"


class StorageError(ImagePipelineError):
    """Raised when the durable store cannot accept an asset."""

    kind = "StorageError"


class StorageUnavailable(StorageError):
    """Raised when storage is unconfigured or the write call fails."""

    kind = "StorageUnavailable"


class InternalError(ImagePipelineError):
    """Raised in place of an untyped exception that escaped a pipeline stage."""

    kind = "InternalError"
