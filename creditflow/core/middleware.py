"""
FastAPI Middleware

- Correlation ID injection
- Request logging (emails in paths are masked)
- Exception handlers mapping AppException to JSON
- Security headers
- Sliding-window rate limiting on webhook paths
"""
import time
from collections import defaultdict, deque
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from creditflow.core.exceptions import AppException, ErrorCode
from creditflow.core.logging import (
    get_correlation_id,
    get_logger,
    mask_email,
    set_correlation_id,
)

logger = get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reuse X-Correlation-ID from the caller or mint one, and echo it back"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = set_correlation_id(request.headers.get("X-Correlation-ID"))
        request.state.correlation_id = correlation_id
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        safe_path = mask_email(request.url.path)

        logger.info(
            f"Request started: {request.method} {safe_path}",
            extra_data={
                "method": request.method,
                "path": safe_path,
                "client_host": request.client.host if request.client else None,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {safe_path}",
                extra_data={
                    "method": request.method,
                    "path": safe_path,
                    "duration_seconds": round(time.perf_counter() - started, 4),
                    "error": str(e),
                },
                exc_info=True
            )
            raise

        log = logger.info if response.status_code < 400 else logger.warning
        log(
            f"Request completed: {request.method} {safe_path}",
            extra_data={
                "method": request.method,
                "path": safe_path,
                "status_code": response.status_code,
                "duration_seconds": round(time.perf_counter() - started, 4),
            }
        )
        return response


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        f"Application exception: {exc.error_code.value}",
        extra_data={
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details,
            "path": mask_email(request.url.path),
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"X-Correlation-ID": get_correlation_id()}
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra_data={
            "exception_type": type(exc).__name__,
            "message": str(exc),
            "path": mask_email(request.url.path),
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred",
                "details": {}
            }
        },
        headers={"X-Correlation-ID": get_correlation_id()}
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """nosniff always; HSTS and CSP upgrade only outside DEBUG"""

    def __init__(self, app: FastAPI, *, debug: bool = False) -> None:
        super().__init__(app)
        self._debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        if not self._debug:
            response.headers["Content-Security-Policy"] = "upgrade-insecure-requests"
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class WebhookRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP sliding window for paths containing ``/webhooks``.

    Sits inside CorrelationIdMiddleware so a 429 still carries a correlation id.
    """

    def __init__(
        self,
        app: FastAPI,
        *,
        max_requests: int = 100,
        window_seconds: int = 60,
    ) -> None:
        super().__init__(app)
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def _prune(self, ip: str, now: float) -> deque[float]:
        hits = self._hits[ip]
        cutoff = now - self._window_seconds
        while hits and hits[0] < cutoff:
            hits.popleft()
        return hits

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if "/webhooks" not in path:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        hits = self._prune(client_ip, now)

        if len(hits) >= self._max_requests:
            logger.warning(
                "Rate limit exceeded for webhook",
                extra_data={
                    "client_ip": client_ip,
                    "path": path,
                    "limit": self._max_requests,
                    "window_seconds": self._window_seconds,
                },
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": {
                        "code": ErrorCode.RATE_LIMITED.value,
                        "message": "Too many requests. Please try again later.",
                        "details": {},
                    }
                },
                headers={
                    "Retry-After": str(self._window_seconds),
                    "X-Correlation-ID": get_correlation_id(),
                },
            )

        hits.append(now)
        return await call_next(request)


def setup_middleware(app: FastAPI) -> None:
    """Register middleware. The last one added is the outermost."""
    from creditflow.core.config import settings

    # Request order: SecurityHeaders -> CorrelationId -> RequestLogging -> RateLimit -> app
    app.add_middleware(
        WebhookRateLimitMiddleware,
        max_requests=settings.WEBHOOK_RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.WEBHOOK_RATE_LIMIT_WINDOW_SECONDS,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, debug=settings.DEBUG)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
