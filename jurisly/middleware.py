# jurisly/middleware.py
"""
Request/response logging with request ids, and security headers.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and log its outcome and latency"""

    EXCLUDED_PATHS = ["/health", "/docs", "/openapi.json", "/redoc"]
    SLOW_REQUEST_SECONDS = 2.0

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        should_log = not any(request.url.path.startswith(path) for path in self.EXCLUDED_PATHS)

        if should_log:
            logger.info(
                f"Incoming request: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "extra_data": {
                        "method": request.method,
                        "path": request.url.path,
                        "client_host": request.client.host if request.client else None,
                    }
                }
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "extra_data": {
                        "process_time_ms": int((time.time() - start_time) * 1000),
                        "exception": str(exc)
                    }
                },
                exc_info=True
            )
            raise

        process_time = time.time() - start_time
        process_time_ms = int(process_time * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time_ms)

        if should_log:
            if response.status_code >= 500:
                log = logger.error
            elif response.status_code >= 400:
                log = logger.warning
            else:
                log = logger.info

            log(
                f"Request completed: {request.method} {request.url.path} - {response.status_code}",
                extra={
                    "request_id": request_id,
                    "extra_data": {
                        "status_code": response.status_code,
                        "process_time_ms": process_time_ms,
                    }
                }
            )

        if process_time > self.SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={"request_id": request_id, "extra_data": {"process_time_ms": process_time_ms}}
            )

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def register_middleware(app):
    """Last registered ends up outermost"""
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    logger.info("Middleware registered")
