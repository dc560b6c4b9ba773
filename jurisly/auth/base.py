# jurisly/auth/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..error_handlers import ErrorCode


class BackendMode(str, Enum):
    HOSTED = "hosted"
    LOCAL = "local"


UNVERIFIED_MESSAGE = (
    "Please verify your email before logging in. "
    "Check your inbox for the verification link."
)
UNEXPECTED_MESSAGE = "An unexpected error occurred. Please try again."
NO_SESSION_MESSAGE = "No user session found."


@dataclass
class AuthUser:
    """Identity record as the identity service reports it"""
    id: str
    email: str
    email_verified: bool
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.metadata.get("name") or (self.email.split("@")[0] if self.email else "") or "User"


@dataclass
class AuthSession:
    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


@dataclass
class AuthResult:
    """Outcome of an auth operation: success flag plus a user-facing message"""
    success: bool
    message: Optional[str] = None
    error_code: Optional[str] = None
    user: Optional[AuthUser] = None
    session: Optional[AuthSession] = None

    @classmethod
    def ok(cls, message: Optional[str] = None, user: Optional[AuthUser] = None,
           session: Optional[AuthSession] = None) -> "AuthResult":
        return cls(success=True, message=message, user=user or (session.user if session else None), session=session)

    @classmethod
    def fail(cls, message: str, error_code: str = ErrorCode.AUTH_FAILED) -> "AuthResult":
        return cls(success=False, message=message, error_code=error_code)


class AuthProvider(ABC):
    """
    Sign up/in/out, session probe and metadata updates against one identity
    backend. Exactly one implementation is chosen at startup.
    """

    mode: BackendMode

    @abstractmethod
    async def signup(self, email: str, password: str, name: str) -> AuthResult:
        """Create an account; hosted accounts start unverified"""

    @abstractmethod
    async def login(self, email: str, password: str) -> AuthResult:
        """Password sign-in; unverified accounts are refused"""

    @abstractmethod
    async def logout(self, access_token: str) -> None:
        """End the session. Never raises."""

    @abstractmethod
    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        """Session probe: the user behind a token, or None"""

    @abstractmethod
    async def update_profile(self, access_token: str, updates: Dict[str, Any]) -> AuthResult:
        """Merge `updates` into the user's metadata"""

    @abstractmethod
    async def update_password(self, access_token: str, current_password: str, new_password: str) -> AuthResult:
        pass

    @abstractmethod
    async def reset_password(self, email: str) -> AuthResult:
        pass

    @abstractmethod
    async def update_password_with_token(self, recovery_token: str, new_password: str) -> AuthResult:
        pass

    @abstractmethod
    async def resend_verification(self, email: str) -> AuthResult:
        pass

    @abstractmethod
    async def verify_email(self, email: str, code: str) -> AuthResult:
        pass

    async def aclose(self) -> None:
        """Release network clients, if any"""
