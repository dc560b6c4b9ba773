# jurisly/auth/service.py
from fastapi import status

from ..error_handlers import AppException, ErrorCode
from .base import AuthResult

# Failure codes from the identity backends and the HTTP status they map to
FAILURE_STATUS = {
    ErrorCode.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.EMAIL_NOT_VERIFIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ACCOUNT_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.FEATURE_UNAVAILABLE: status.HTTP_501_NOT_IMPLEMENTED,
    ErrorCode.IDENTITY_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def raise_for_failure(result: AuthResult) -> AuthResult:
    """Pass successful results through; turn failures into AppException"""
    if result.success:
        return result
    code = result.error_code or ErrorCode.AUTH_FAILED
    raise AppException(
        message=result.message or "Authentication failed",
        error_code=code,
        status_code=FAILURE_STATUS.get(code, status.HTTP_400_BAD_REQUEST),
    )
