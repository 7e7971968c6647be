"""Performance monitoring middleware for tracking request metrics."""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class PerformanceMetrics:
    """Class for tracking performance metrics across requests."""

    def __init__(self, slow_threshold: float = 2.0, very_slow_threshold: float = 5.0):
        """Initialize metrics tracker."""
        self.slow_threshold = slow_threshold
        self.very_slow_threshold = very_slow_threshold
        self.reset()

    def reset(self) -> None:
        self.request_count = 0
        self.total_duration = 0.0
        self.slow_requests = 0
        self.very_slow_requests = 0
        self.errors = 0
        self.image_fallbacks = 0

    def record_request(self, duration: float, is_error: bool = False, is_fallback: bool = False) -> None:
        """
        Record a request metric.

        Args:
            duration: Request duration in seconds
            is_error: Whether the request resulted in an error
            is_fallback: Whether an image request was answered with the fallback
        """
        self.request_count += 1
        self.total_duration += duration

        if is_error:
            self.errors += 1
        if is_fallback:
            self.image_fallbacks += 1

        if duration >= self.very_slow_threshold:
            self.very_slow_requests += 1
        elif duration >= self.slow_threshold:
            self.slow_requests += 1

    def get_average_duration(self) -> float:
        """Get average request duration in milliseconds."""
        if self.request_count == 0:
            return 0.0
        return (self.total_duration / self.request_count) * 1000

    def get_error_rate(self) -> float:
        """Get error rate percentage."""
        if self.request_count == 0:
            return 0.0
        return (self.errors / self.request_count) * 100

    def get_summary(self) -> dict:
        """Get performance metrics summary."""
        return {
            "total_requests": self.request_count,
            "average_duration_ms": round(self.get_average_duration(), 2),
            "slow_requests": self.slow_requests,
            "very_slow_requests": self.very_slow_requests,
            "errors": self.errors,
            "error_rate": round(self.get_error_rate(), 2),
            "image_fallbacks": self.image_fallbacks,
        }


# Global metrics instance
metrics = PerformanceMetrics()


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Middleware for tracking and logging request performance metrics."""

    def __init__(
        self,
        app: ASGIApp,
        slow_request_threshold: float = 2.0,
        very_slow_request_threshold: float = 5.0
    ):
        super().__init__(app)
        self.slow_threshold = slow_request_threshold
        self.very_slow_threshold = very_slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and track performance metrics."""
        start_time = time.time()
        method = request.method
        path = request.url.path
        request_id = getattr(request.state, "request_id", "unknown")

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            metrics.record_request(duration, is_error=True)
            logger.error(
                f"Request failed: {method} {path}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": round(duration * 1000, 2),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        duration_ms = round(duration * 1000, 2)
        metrics.record_request(
            duration,
            is_error=response.status_code >= 500,
            is_fallback="x-image-fallback" in response.headers,
        )
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        log_data = {
            "request_id": request_id,
            "method": method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
        if duration >= self.very_slow_threshold:
            logger.error(f"VERY SLOW REQUEST: {method} {path} took {duration_ms}ms", extra=log_data)
        elif duration >= self.slow_threshold:
            logger.warning(f"Slow request: {method} {path} took {duration_ms}ms", extra=log_data)
        else:
            logger.debug(f"Request completed: {method} {path}", extra=log_data)

        return response
