# jurisly/auth/local.py
"""
Fallback identity backend used when no hosted identity service is
configured. Credential records and sessions live in one local JSON
document ("jurisly_users").
"""

import asyncio
import secrets
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from passlib.context import CryptContext

from ..error_handlers import ErrorCode
from ..local_storage import LocalStorage
from ..logging_config import get_logger
from .base import (
    NO_SESSION_MESSAGE,
    UNVERIFIED_MESSAGE,
    AuthProvider,
    AuthResult,
    AuthSession,
    AuthUser,
    BackendMode,
)

logger = get_logger(__name__)

USERS_KEY = "jurisly_users"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Key stretching is CPU bound; keep it off the event loop and outside the store lock
hash_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="password_hash_")


async def hash_password(password: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(hash_executor, pwd_context.hash, password)


async def verify_password(password: str, password_hash: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(hash_executor, pwd_context.verify, password, password_hash)


def _empty_document() -> Dict[str, Any]:
    return {"users": [], "sessions": {}}


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _find_by_email(doc: Dict[str, Any], email: str) -> Optional[Dict[str, Any]]:
    email = _normalize_email(email)
    return next((u for u in doc["users"] if u["email"] == email), None)


def _find_by_token(doc: Dict[str, Any], token: str) -> Optional[Dict[str, Any]]:
    user_id = doc["sessions"].get(token)
    if not user_id:
        return None
    return next((u for u in doc["users"] if u["id"] == user_id), None)


def _to_auth_user(record: Dict[str, Any]) -> AuthUser:
    return AuthUser(
        id=record["id"],
        email=record["email"],
        email_verified=record["email_verified"],
        metadata=dict(record.get("metadata") or {}),
    )


def _new_code() -> str:
    return f"{secrets.randbelow(10 ** 6):06d}"


class LocalAuthProvider(AuthProvider):
    mode = BackendMode.LOCAL

    def __init__(self, storage: LocalStorage, auto_verify: bool = True):
        self.storage = storage
        self.auto_verify = auto_verify

    async def _load(self) -> Dict[str, Any]:
        return await self.storage.get_item(USERS_KEY) or _empty_document()

    def _open_session(self, doc: Dict[str, Any], record: Dict[str, Any]) -> AuthSession:
        token = secrets.token_urlsafe(32)
        doc["sessions"][token] = record["id"]
        return AuthSession(access_token=token, user=_to_auth_user(record))

    async def signup(self, email: str, password: str, name: str) -> AuthResult:
        password_hash = await hash_password(password)

        def mutate(doc):
            doc = doc or _empty_document()
            if _find_by_email(doc, email):
                return doc, AuthResult.fail(
                    "An account with this email already exists.", ErrorCode.ACCOUNT_EXISTS
                )

            record = {
                "id": str(uuid.uuid4()),
                "email": _normalize_email(email),
                "password_hash": password_hash,
                "email_verified": self.auto_verify,
                "verification_code": None if self.auto_verify else _new_code(),
                "metadata": {"name": name},
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            doc["users"].append(record)

            if self.auto_verify:
                session = self._open_session(doc, record)
                return doc, AuthResult.ok("Account created successfully!", session=session)

            logger.info(
                "Verification code issued",
                extra={"user_id": record["id"], "extra_data": {"code": record["verification_code"]}}
            )
            return doc, AuthResult.ok(
                "Account created! Please check your email to verify your account before logging in.",
                user=_to_auth_user(record),
            )

        return await self.storage.update_item(USERS_KEY, mutate)

    async def login(self, email: str, password: str) -> AuthResult:
        invalid = AuthResult.fail("Invalid email or password.", ErrorCode.INVALID_CREDENTIALS)
        record = _find_by_email(await self._load(), email)
        if not record or not await verify_password(password, record["password_hash"]):
            return invalid
        if not record["email_verified"]:
            return AuthResult.fail(UNVERIFIED_MESSAGE, ErrorCode.EMAIL_NOT_VERIFIED)

        def mutate(doc):
            doc = doc or _empty_document()
            current = _find_by_email(doc, email)
            # Password changed between the check and the write
            if not current or current["password_hash"] != record["password_hash"]:
                return doc, invalid
            return doc, AuthResult.ok(session=self._open_session(doc, current))

        return await self.storage.update_item(USERS_KEY, mutate)

    async def logout(self, access_token: str) -> None:
        def mutate(doc):
            doc = doc or _empty_document()
            doc["sessions"].pop(access_token, None)
            return doc, None

        await self.storage.update_item(USERS_KEY, mutate)

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        record = _find_by_token(await self._load(), access_token)
        return _to_auth_user(record) if record else None

    async def update_profile(self, access_token: str, updates: Dict[str, Any]) -> AuthResult:
        def mutate(doc):
            doc = doc or _empty_document()
            record = _find_by_token(doc, access_token)
            if not record:
                return doc, AuthResult.fail(NO_SESSION_MESSAGE, ErrorCode.UNAUTHORIZED)
            record["metadata"] = {**(record.get("metadata") or {}), **updates}
            return doc, AuthResult.ok(user=_to_auth_user(record))

        return await self.storage.update_item(USERS_KEY, mutate)

    async def update_password(self, access_token: str, current_password: str, new_password: str) -> AuthResult:
        record = _find_by_token(await self._load(), access_token)
        if not record:
            return AuthResult.fail(NO_SESSION_MESSAGE, ErrorCode.UNAUTHORIZED)
        incorrect = AuthResult.fail("Current password is incorrect.", ErrorCode.INVALID_CREDENTIALS)
        if not await verify_password(current_password, record["password_hash"]):
            return incorrect
        new_hash = await hash_password(new_password)

        def mutate(doc):
            doc = doc or _empty_document()
            current = _find_by_token(doc, access_token)
            if not current:
                return doc, AuthResult.fail(NO_SESSION_MESSAGE, ErrorCode.UNAUTHORIZED)
            if current["password_hash"] != record["password_hash"]:
                return doc, incorrect
            current["password_hash"] = new_hash
            return doc, AuthResult.ok("Password updated successfully!", user=_to_auth_user(current))

        return await self.storage.update_item(USERS_KEY, mutate)

    async def reset_password(self, email: str) -> AuthResult:
        return AuthResult.ok(
            'Password reset not available in demo mode. '
            'Please use "Update Password" in settings if logged in.'
        )

    async def update_password_with_token(self, recovery_token: str, new_password: str) -> AuthResult:
        return AuthResult.fail(
            "This feature requires hosted identity configuration.", ErrorCode.FEATURE_UNAVAILABLE
        )

    async def resend_verification(self, email: str) -> AuthResult:
        if self.auto_verify:
            return AuthResult.ok("Email verification not required in demo mode.")

        def mutate(doc):
            doc = doc or _empty_document()
            record = _find_by_email(doc, email)
            if not record:
                return doc, AuthResult.fail(NO_SESSION_MESSAGE, ErrorCode.NOT_FOUND)
            if record["email_verified"]:
                return doc, AuthResult.ok("Email already verified.")
            record["verification_code"] = _new_code()
            logger.info(
                "Verification code re-issued",
                extra={"user_id": record["id"], "extra_data": {"code": record["verification_code"]}}
            )
            return doc, AuthResult.ok("Verification email sent! Check your inbox.")

        return await self.storage.update_item(USERS_KEY, mutate)

    async def verify_email(self, email: str, code: str) -> AuthResult:
        def mutate(doc):
            doc = doc or _empty_document()
            record = _find_by_email(doc, email)
            if not record:
                return doc, AuthResult.fail("Invalid or expired verification code.")
            if record["email_verified"]:
                return doc, AuthResult.ok("Email already verified.", user=_to_auth_user(record))
            expected = record.get("verification_code") or ""
            if not expected or not secrets.compare_digest(expected, code.strip()):
                return doc, AuthResult.fail("Invalid or expired verification code.")
            record["email_verified"] = True
            record["verification_code"] = None
            return doc, AuthResult.ok("Email verified successfully!", session=self._open_session(doc, record))

        return await self.storage.update_item(USERS_KEY, mutate)

