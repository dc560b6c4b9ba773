# jurisly/error_handlers.py
"""
Application exceptions, error codes and the FastAPI handlers that render
them as a single JSON error envelope.
"""

import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .config import settings
from .logging_config import get_logger

logger = get_logger(__name__)


class ErrorCode:
    """Stable codes the client can switch on"""

    # General (1xxx)
    INTERNAL_SERVER_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    UNAUTHORIZED = "ERR_1003"
    RATE_LIMIT_EXCEEDED = "ERR_1005"

    # Database (2xxx)
    DATABASE_ERROR = "ERR_2000"
    INTEGRITY_ERROR = "ERR_2001"

    # Auth and chat (3xxx)
    AUTH_FAILED = "ERR_3000"
    INVALID_CREDENTIALS = "ERR_3001"
    EMAIL_NOT_VERIFIED = "ERR_3002"
    ACCOUNT_EXISTS = "ERR_3003"
    MESSAGE_NOT_FOUND = "ERR_3004"
    CONVERSATION_NOT_FOUND = "ERR_3005"
    UNSUPPORTED_EXPORT_FORMAT = "ERR_3006"
    FEATURE_UNAVAILABLE = "ERR_3007"

    # External services (4xxx)
    IDENTITY_SERVICE_ERROR = "ERR_4000"
    STORAGE_SERVICE_ERROR = "ERR_4001"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AppException):
    def __init__(self, message: str, error_code: str = ErrorCode.VALIDATION_ERROR,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class NotFoundException(AppException):
    def __init__(self, resource: str, identifier: str, error_code: str = ErrorCode.NOT_FOUND):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "identifier": identifier}
        )


class UnauthorizedException(AppException):
    def __init__(self, message: str = "Authentication required", error_code: str = ErrorCode.UNAUTHORIZED):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class DatabaseException(AppException):
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_ERROR,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"original_error": str(original_error)} if original_error else {}
        )


class ExternalServiceException(AppException):
    """A hosted collaborator (identity, object storage) failed"""

    def __init__(self, service_name: str, message: str, error_code: str = ErrorCode.INTERNAL_SERVER_ERROR):
        super().__init__(
            message=f"{service_name} error: {message}",
            error_code=error_code,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"service": service_name}
        )


def format_error_response(
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Returns:
        {"error": {"code", "message", "timestamp", "details"?, "request_id"?}}
    """
    response = {
        "error": {
            "code": error_code,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    }

    if details:
        response["error"]["details"] = details

    if request_id:
        response["error"]["request_id"] = request_id

    return response


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application error: {exc.message}",
        extra={
            "request_id": request_id,
            "extra_data": {
                "error_code": exc.error_code,
                "status_code": exc.status_code,
                "path": str(request.url.path),
                "method": request.method,
                "details": exc.details
            }
        },
        exc_info=exc.status_code >= 500
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details,
            request_id=request_id
        )
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)

    errors = [
        {
            "field": ".".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]

    logger.warning(
        "Validation error",
        extra={
            "request_id": request_id,
            "extra_data": {"path": str(request.url.path), "method": request.method, "errors": errors}
        }
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=format_error_response(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Request validation failed",
            details={"validation_errors": errors},
            request_id=request_id
        )
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)

    if isinstance(exc, IntegrityError):
        error_code = ErrorCode.INTEGRITY_ERROR
        message = "Database integrity constraint violated"
        status_code = status.HTTP_409_CONFLICT
    else:
        error_code = ErrorCode.DATABASE_ERROR
        message = "Database operation failed"
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.error(
        f"Database error: {exc}",
        extra={
            "request_id": request_id,
            "extra_data": {"error_type": type(exc).__name__, "path": str(request.url.path)}
        },
        exc_info=True
    )

    details = None if settings.ENVIRONMENT == "production" else {"database_error": str(exc)}

    return JSONResponse(
        status_code=status_code,
        content=format_error_response(
            error_code=error_code,
            message=message,
            details=details,
            request_id=request_id
        )
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for anything not handled above"""

    request_id = getattr(request.state, "request_id", None)

    logger.critical(
        f"Unhandled exception: {exc}",
        extra={
            "request_id": request_id,
            "extra_data": {
                "exception_type": type(exc).__name__,
                "path": str(request.url.path),
                "method": request.method
            }
        },
        exc_info=True
    )

    if settings.ENVIRONMENT == "production":
        message = "An unexpected error occurred. Please try again."
        details = None
    else:
        message = str(exc)
        details = {"traceback": traceback.format_exc().split("\n")}

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=format_error_response(
            error_code=ErrorCode.INTERNAL_SERVER_ERROR,
            message=message,
            details=details,
            request_id=request_id
        )
    )


def register_exception_handlers(app):
    """Most specific first; the generic handler is the last resort"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
