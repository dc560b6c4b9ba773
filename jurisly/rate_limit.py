"""
Rate limiting for the unauthenticated auth endpoints (brute force, signup
spam, reset-mail flooding).
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import settings
from .error_handlers import ErrorCode, format_error_response
from .logging_config import get_logger

logger = get_logger(__name__)


def get_user_id_or_ip(request: Request) -> str:
    """Authenticated callers are limited per account, everyone else per IP"""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_id_or_ip,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    default_limits=[],
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False,
)

auth_limit = limiter.limit(settings.AUTH_RATE_LIMIT)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "Rate limit exceeded",
        extra={
            "extra_data": {
                "path": request.url.path,
                "limit": str(exc.detail),
                "key": get_user_id_or_ip(request),
            }
        }
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=format_error_response(
            error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
            message=f"Too many requests: {exc.detail}",
            request_id=getattr(request.state, "request_id", None),
        ),
    )


def register_rate_limiting(app):
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    if not settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting disabled by configuration")
