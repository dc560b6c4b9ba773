# jurisly/auth/hosted.py
"""
Identity backend for the hosted (GoTrue-compatible) auth REST API.

Every call forwards to the platform; the platform's own error text is
passed back to the caller unchanged.
"""

from typing import Any, Dict, Optional

import httpx

from ..error_handlers import ErrorCode, ExternalServiceException
from ..logging_config import get_logger
from ..monitoring import track_external_api_call
from .base import (
    NO_SESSION_MESSAGE,
    UNEXPECTED_MESSAGE,
    UNVERIFIED_MESSAGE,
    AuthProvider,
    AuthResult,
    AuthSession,
    AuthUser,
    BackendMode,
)

logger = get_logger(__name__)

SERVICE_NAME = "identity"


def error_message(response: httpx.Response) -> str:
    """Pull the human-readable error out of a platform error body"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


def parse_user(data: Dict[str, Any]) -> AuthUser:
    return AuthUser(
        id=str(data["id"]),
        email=data.get("email") or "",
        email_verified=bool(data.get("email_confirmed_at")),
        metadata=dict(data.get("user_metadata") or {}),
    )


def parse_session(data: Dict[str, Any]) -> AuthSession:
    return AuthSession(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=data.get("expires_in"),
        user=parse_user(data["user"]),
    )


class HostedAuthProvider(AuthProvider):
    mode = BackendMode.HOSTED

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        redirect_url: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.redirect_url = redirect_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=15.0)

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json",
        }

    async def _call(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        access_token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        with track_external_api_call(SERVICE_NAME, operation):
            return await self.client.request(
                method,
                f"{self.base_url}/auth/v1{path}",
                headers=self._headers(access_token),
                json=json,
                params=params,
            )

    async def signup(self, email: str, password: str, name: str) -> AuthResult:
        try:
            response = await self._call(
                "POST", "/signup", "signup",
                json={"email": email, "password": password, "data": {"name": name}},
                params={"redirect_to": f"{self.redirect_url}/auth/verify"},
            )
        except httpx.HTTPError:
            return AuthResult.fail(UNEXPECTED_MESSAGE, ErrorCode.IDENTITY_SERVICE_ERROR)

        if response.is_error:
            message = error_message(response)
            logger.warning("Signup rejected by identity service", extra={"extra_data": {"error": message}})
            code = ErrorCode.ACCOUNT_EXISTS if "already registered" in message.lower() else ErrorCode.AUTH_FAILED
            return AuthResult.fail(message, code)

        body = response.json()
        user_data = body.get("user") or body
        if not user_data.get("id"):
            return AuthResult.fail("Signup failed. Please try again.")

        # An obfuscated user with no identities means the email is already taken
        if user_data.get("identities") == []:
            return AuthResult.fail("An account with this email already exists.", ErrorCode.ACCOUNT_EXISTS)

        return AuthResult.ok(
            "Account created! Please check your email to verify your account before logging in.",
            user=parse_user(user_data),
        )

    async def login(self, email: str, password: str) -> AuthResult:
        try:
            response = await self._call(
                "POST", "/token", "sign_in_with_password",
                json={"email": email, "password": password},
                params={"grant_type": "password"},
            )
        except httpx.HTTPError:
            return AuthResult.fail(UNEXPECTED_MESSAGE, ErrorCode.IDENTITY_SERVICE_ERROR)

        if response.is_error:
            message = error_message(response)
            if "email not confirmed" in message.lower():
                return AuthResult.fail(UNVERIFIED_MESSAGE, ErrorCode.EMAIL_NOT_VERIFIED)
            return AuthResult.fail(message, ErrorCode.INVALID_CREDENTIALS)

        session = parse_session(response.json())
        if not session.user.email_verified:
            await self.logout(session.access_token)
            return AuthResult.fail(UNVERIFIED_MESSAGE, ErrorCode.EMAIL_NOT_VERIFIED)

        return AuthResult.ok(session=session)

    async def logout(self, access_token: str) -> None:
        try:
            response = await self._call("POST", "/logout", "sign_out", access_token=access_token)
            if response.is_error:
                logger.warning("Logout error", extra={"extra_data": {"error": error_message(response)}})
        except httpx.HTTPError as e:
            logger.warning("Logout error", extra={"extra_data": {"error": str(e)}})

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        try:
            response = await self._call("GET", "/user", "get_user", access_token=access_token)
        except httpx.HTTPError as e:
            raise ExternalServiceException(SERVICE_NAME, str(e), ErrorCode.IDENTITY_SERVICE_ERROR)

        if response.status_code in (401, 403):
            return None
        if response.is_error:
            raise ExternalServiceException(SERVICE_NAME, error_message(response), ErrorCode.IDENTITY_SERVICE_ERROR)
        return parse_user(response.json())

    async def _update_user(self, access_token: str, payload: Dict[str, Any], operation: str) -> AuthResult:
        try:
            response = await self._call("PUT", "/user", operation, access_token=access_token, json=payload)
        except httpx.HTTPError:
            return AuthResult.fail(UNEXPECTED_MESSAGE, ErrorCode.IDENTITY_SERVICE_ERROR)

        if response.status_code in (401, 403):
            return AuthResult.fail(NO_SESSION_MESSAGE, ErrorCode.UNAUTHORIZED)
        if response.is_error:
            return AuthResult.fail(error_message(response))
        return AuthResult.ok(user=parse_user(response.json()))

    async def update_profile(self, access_token: str, updates: Dict[str, Any]) -> AuthResult:
        return await self._update_user(access_token, {"data": updates}, "update_metadata")

    async def update_password(self, access_token: str, current_password: str, new_password: str) -> AuthResult:
        user = await self.get_user(access_token)
        if not user:
            return AuthResult.fail(NO_SESSION_MESSAGE, ErrorCode.UNAUTHORIZED)

        try:
            check = await self._call(
                "POST", "/token", "verify_current_password",
                json={"email": user.email, "password": current_password},
                params={"grant_type": "password"},
            )
        except httpx.HTTPError:
            return AuthResult.fail(UNEXPECTED_MESSAGE, ErrorCode.IDENTITY_SERVICE_ERROR)
        if check.is_error:
            return AuthResult.fail("Current password is incorrect.", ErrorCode.INVALID_CREDENTIALS)

        result = await self._update_user(access_token, {"password": new_password}, "update_password")
        if result.success:
            result.message = "Password updated successfully!"
        return result

    async def reset_password(self, email: str) -> AuthResult:
        try:
            response = await self._call(
                "POST", "/recover", "reset_password",
                json={"email": email},
                params={"redirect_to": f"{self.redirect_url}/auth/reset-password"},
            )
        except httpx.HTTPError:
            return AuthResult.fail(UNEXPECTED_MESSAGE, ErrorCode.IDENTITY_SERVICE_ERROR)

        if response.is_error:
            return AuthResult.fail(error_message(response))
        return AuthResult.ok("Password reset email sent! Check your inbox for the reset link.")

    async def update_password_with_token(self, recovery_token: str, new_password: str) -> AuthResult:
        result = await self._update_user(recovery_token, {"password": new_password}, "update_password_with_token")
        if result.success:
            result.message = "Password updated successfully!"
        return result

    async def resend_verification(self, email: str) -> AuthResult:
        try:
            response = await self._call(
                "POST", "/resend", "resend_verification",
                json={"type": "signup", "email": email},
                params={"redirect_to": f"{self.redirect_url}/auth/verify"},
            )
        except httpx.HTTPError:
            return AuthResult.fail(UNEXPECTED_MESSAGE, ErrorCode.IDENTITY_SERVICE_ERROR)

        if response.is_error:
            return AuthResult.fail(error_message(response))
        return AuthResult.ok("Verification email sent! Check your inbox.")

    async def verify_email(self, email: str, code: str) -> AuthResult:
        try:
            response = await self._call(
                "POST", "/verify", "verify_otp",
                json={"type": "signup", "email": email, "token": code},
            )
        except httpx.HTTPError:
            return AuthResult.fail(UNEXPECTED_MESSAGE, ErrorCode.IDENTITY_SERVICE_ERROR)

        if response.is_error:
            return AuthResult.fail(error_message(response))
        return AuthResult.ok("Email verified successfully!", session=parse_session(response.json()))

    async def aclose(self) -> None:
        await self.client.aclose()
