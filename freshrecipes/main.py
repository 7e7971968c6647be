"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from freshrecipes.api.routes import health, html, images
from freshrecipes.config import settings
from freshrecipes.core.request_id import get_request_id
from freshrecipes.middleware.logging import RequestLoggingMiddleware
from freshrecipes.middleware.performance import PerformanceMiddleware
from freshrecipes.middleware.rate_limit import get_rate_limit_exceeded_handler, limiter
from freshrecipes.middleware.security import SecurityHeadersMiddleware, setup_compression, setup_cors
from freshrecipes.utils.exceptions import (
    AuthenticationError,
    FreshRecipesException,
    ImagePipelineError,
    ValidationError,
)
from freshrecipes.utils.logging_config import setup_logging

# Setup logging
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="FreshRecipes Image API",
    description="Safe re-hosting of remote recipe images found in model output",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add rate limiter to app
app.state.limiter = limiter

# Add exception handler for rate limiting
app.add_exception_handler(RateLimitExceeded, get_rate_limit_exceeded_handler())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors with detailed messages."""
    request_id = get_request_id()

    logger.warning(
        f"Validation error: {str(exc)}",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "errors": exc.errors(),
        },
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "detail": exc.errors(),
            "request_id": request_id,
        },
    )


@app.exception_handler(FreshRecipesException)
async def freshrecipes_exception_handler(request: Request, exc: FreshRecipesException) -> JSONResponse:
    """Handle custom FreshRecipes exceptions."""
    request_id = get_request_id()

    if isinstance(exc, AuthenticationError):
        status_code = status.HTTP_401_UNAUTHORIZED
        error_message = "Authentication failed"
    elif isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
        error_message = "Validation error"
    elif isinstance(exc, ImagePipelineError):
        # Pipeline errors are normally turned into the fallback image by the route
        status_code = status.HTTP_502_BAD_GATEWAY
        error_message = exc.kind
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        error_message = "Internal server error"

    logger.error(
        f"Exception: {error_message}",
        extra={"request_id": request_id, "exception": str(exc)},
        exc_info=status_code >= 500,
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": error_message,
            "detail": str(exc),
            "request_id": request_id,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = get_request_id()

    logger.error(
        f"Unexpected exception: {str(exc)}",
        extra={"request_id": request_id},
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred",
            "request_id": request_id,
        },
    )


# Add middleware (order matters!)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0, very_slow_request_threshold=5.0)
app.add_middleware(RequestLoggingMiddleware)
setup_compression(app)
setup_cors(app)

# Include routers
app.include_router(health.router)
app.include_router(images.router)
app.include_router(html.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event."""
    logger.info("FreshRecipes Image API starting up...")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(
        "Image pipeline configured",
        extra={
            "storage_backend": settings.storage_backend,
            "delivery_mode": settings.image_delivery_mode,
            "max_bytes": settings.image_max_bytes,
            "fetch_timeout": settings.image_fetch_timeout,
            "max_redirects": settings.image_max_redirects,
        },
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event."""
    logger.info("FreshRecipes Image API shutting down...")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "FreshRecipes Image API",
        "version": "1.0.0",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    # Cloud Run requires listening on 0.0.0.0:$PORT (defaults to 8080).
    uvicorn.run(app, host=settings.host, port=settings.port)
