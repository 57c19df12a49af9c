"""
HTTP middleware: correlation-aware request logging, security headers and
in-process request metrics.
"""

import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()

CORRELATION_HEADER = "X-Request-ID"

QUIET_PATHS = frozenset({"/health", "/metrics", "/docs", "/redoc", "/openapi.json"})
# Kiosk clients poll the trigger timestamp several times a second
QUIET_POLLS = frozenset({("GET", "/api/trigger-capture")})

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store"
}


def new_correlation_id() -> str:
    return f"req_{int(time.time() * 1000)}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log each request with a correlation id.

    The id comes from the `X-Request-ID` header when the caller sends one,
    is stored on `request.state.correlation_id`, bound into the structlog
    context for every log line emitted while handling the request, and
    echoed back on the response.
    """

    def __init__(self, app, quiet_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths) if quiet_paths is not None else QUIET_PATHS

    def is_quiet(self, request: Request) -> bool:
        path = request.url.path
        return path in self.quiet_paths or (request.method, path) in QUIET_POLLS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or new_correlation_id()
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        quiet = self.is_quiet(request)
        started = time.perf_counter()
        if not quiet:
            logger.info(
                "Request started",
                method=request.method,
                path=request.url.path,
                client=request.client.host if request.client else None
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Unhandled error while processing request",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                process_time_ms=round((time.perf_counter() - started) * 1000, 2)
            )
            response = JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "correlation_id": correlation_id,
                    "timestamp": datetime.utcnow().isoformat()
                }
            )
        else:
            if not quiet:
                logger.info(
                    "Request completed",
                    status_code=response.status_code,
                    process_time_ms=round((time.perf_counter() - started) * 1000, 2)
                )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add browser hardening headers to every response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


class RequestMetrics:
    """Request count, error count and cumulative latency for `GET /metrics`."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.request_count = 0
        self.error_count = 0
        self.total_seconds = 0.0

    def record(self, seconds: float, is_error: bool) -> None:
        self.request_count += 1
        self.total_seconds += seconds
        if is_error:
            self.error_count += 1

    def snapshot(self) -> Dict[str, Any]:
        if not self.request_count:
            return {"total_requests": 0, "error_count": 0, "error_rate": 0, "avg_processing_time_ms": 0}
        return {
            "total_requests": self.request_count,
            "error_count": self.error_count,
            "error_rate": self.error_count / self.request_count,
            "avg_processing_time_ms": round(self.total_seconds / self.request_count * 1000, 2)
        }


request_metrics = RequestMetrics()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Feed every request's latency and outcome into a `RequestMetrics`."""

    def __init__(self, app, metrics: Optional[RequestMetrics] = None):
        super().__init__(app)
        self.metrics = metrics or request_metrics

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self.metrics.record(time.perf_counter() - started, is_error=True)
            raise

        # 4xx responses (no face, bad payload) count as errors too
        self.metrics.record(time.perf_counter() - started, is_error=response.status_code >= 400)
        return response


def get_metrics() -> Dict[str, Any]:
    return request_metrics.snapshot()
