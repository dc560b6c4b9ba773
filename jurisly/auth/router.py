from typing import Annotated

from fastapi import APIRouter, Depends, Request

from ..backend import Backend, get_backend
from ..logging_config import get_logger, log_business_event
from ..rate_limit import auth_limit
from ..users.schemas import UserOut
from . import schemas
from .base import AuthSession
from .dependencies import get_current_session
from .service import raise_for_failure

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=schemas.AuthResponse, status_code=201)
@auth_limit
async def signup(
    request: Request,
    body: schemas.SignupRequest,
    backend: Annotated[Backend, Depends(get_backend)],
):
    """Create an account. Hosted accounts must verify their email before login."""
    result = raise_for_failure(await backend.auth.signup(body.email, body.password, body.name))
    log_business_event(
        "user_signed_up",
        user_id=result.user.id if result.user else None,
        mode=backend.mode.value,
        verified=bool(result.user and result.user.email_verified),
    )
    return schemas.AuthResponse.from_result(result)


@router.post("/login", response_model=schemas.AuthResponse)
@auth_limit
async def login(
    request: Request,
    body: schemas.LoginRequest,
    backend: Annotated[Backend, Depends(get_backend)],
):
    result = await backend.auth.login(body.email, body.password)
    if not result.success:
        logger.info("Login refused", extra={"extra_data": {"error_code": result.error_code}})
    raise_for_failure(result)

    log_business_event("user_logged_in", user_id=result.user.id, mode=backend.mode.value)
    return schemas.AuthResponse.from_result(result)


@router.post("/logout", response_model=schemas.MessageResponse)
async def logout(
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    await backend.auth.logout(session.access_token)
    logger.info("User logged out", extra={"user_id": session.user.id})
    return schemas.MessageResponse(message="Logged out")


@router.get("/session", response_model=UserOut)
async def current_session(session: Annotated[AuthSession, Depends(get_current_session)]):
    """Who is behind the bearer token"""
    return UserOut.from_auth_user(session.user)


@router.post("/verify", response_model=schemas.AuthResponse)
@auth_limit
async def verify_email(
    request: Request,
    body: schemas.VerifyEmailRequest,
    backend: Annotated[Backend, Depends(get_backend)],
):
    result = raise_for_failure(await backend.auth.verify_email(body.email, body.code))
    return schemas.AuthResponse.from_result(result)


@router.post("/resend-verification", response_model=schemas.MessageResponse)
@auth_limit
async def resend_verification(
    request: Request,
    body: schemas.EmailRequest,
    backend: Annotated[Backend, Depends(get_backend)],
):
    result = raise_for_failure(await backend.auth.resend_verification(body.email))
    return schemas.MessageResponse(message=result.message or "")


@router.post("/reset-password", response_model=schemas.MessageResponse)
@auth_limit
async def reset_password(
    request: Request,
    body: schemas.EmailRequest,
    backend: Annotated[Backend, Depends(get_backend)],
):
    result = raise_for_failure(await backend.auth.reset_password(body.email))
    return schemas.MessageResponse(message=result.message or "")


@router.post("/update-password", response_model=schemas.MessageResponse)
async def update_password_with_token(
    body: schemas.PasswordResetConfirm,
    backend: Annotated[Backend, Depends(get_backend)],
):
    """Finish a password reset with the recovery token from the email link"""
    result = raise_for_failure(
        await backend.auth.update_password_with_token(body.recovery_token, body.new_password)
    )
    return schemas.MessageResponse(message=result.message or "Password updated successfully!")
