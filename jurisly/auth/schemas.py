from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from ..users.schemas import UserOut
from .base import AuthResult


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class EmailRequest(BaseModel):
    email: EmailStr


class VerifyEmailRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=64)


class PasswordResetConfirm(BaseModel):
    recovery_token: str
    new_password: str = Field(..., min_length=6)


class SessionOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class AuthResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    user: Optional[UserOut] = None
    session: Optional[SessionOut] = None

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        session = None
        if result.session:
            session = SessionOut(
                access_token=result.session.access_token,
                refresh_token=result.session.refresh_token,
                expires_in=result.session.expires_in,
            )
        return cls(
            success=result.success,
            message=result.message,
            user=UserOut.from_auth_user(result.user) if result.user else None,
            session=session,
        )


class MessageResponse(BaseModel):
    success: bool = True
    message: str
