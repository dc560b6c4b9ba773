# jurisly/users/service.py
"""
Profile, preferences and avatar on top of the identity metadata.

Preferences live in the user's metadata under "preferences"; missing
keys fall back to the defaults on read.
"""

from typing import Any, Dict

from ..auth.base import AuthProvider, AuthUser
from ..auth.service import raise_for_failure
from ..error_handlers import ValidationException
from ..logging_config import get_logger, log_business_event
from ..storage import ALLOWED_AVATAR_TYPES, AvatarStorage, avatar_path
from . import schemas

logger = get_logger(__name__)

PREFERENCES_KEY = "preferences"
MAX_AVATAR_BYTES = 5 * 1024 * 1024


def read_preferences(user: AuthUser) -> schemas.Preferences:
    stored = user.metadata.get(PREFERENCES_KEY) or {}
    known = {k: v for k, v in stored.items() if k in schemas.Preferences.model_fields}
    try:
        return schemas.Preferences(**known)
    except ValueError:
        logger.warning(
            "Stored preferences invalid, using defaults",
            extra={"user_id": user.id, "extra_data": {"stored": stored}}
        )
        return schemas.Preferences()


class ProfileService:
    def __init__(self, auth: AuthProvider, storage: AvatarStorage):
        self.auth = auth
        self.storage = storage

    async def update_profile(self, access_token: str, user: AuthUser, updates: schemas.ProfileUpdate) -> AuthUser:
        changes: Dict[str, Any] = updates.model_dump(exclude_unset=True, mode="json")
        if not changes:
            return user

        result = raise_for_failure(await self.auth.update_profile(access_token, changes))
        logger.info("Profile updated", extra={"user_id": result.user.id, "extra_data": {"fields": list(changes)}})
        return result.user

    async def update_preferences(
        self, access_token: str, user: AuthUser, updates: schemas.PreferencesUpdate
    ) -> schemas.Preferences:
        merged = read_preferences(user).model_copy(update=updates.model_dump(exclude_unset=True, exclude_none=True))
        result = raise_for_failure(
            await self.auth.update_profile(access_token, {PREFERENCES_KEY: merged.model_dump(mode="json")})
        )
        return read_preferences(result.user)

    async def change_password(self, access_token: str, body: schemas.PasswordChange) -> str:
        result = raise_for_failure(
            await self.auth.update_password(access_token, body.current_password, body.new_password)
        )
        return result.message or "Password updated successfully!"

    async def upload_avatar(
        self,
        access_token: str,
        user: AuthUser,
        filename: str,
        content_type: str,
        content: bytes,
    ) -> AuthUser:
        if content_type not in ALLOWED_AVATAR_TYPES:
            raise ValidationException(
                "Avatar must be a PNG, JPEG, WebP or GIF image",
                details={"content_type": content_type}
            )
        if not content:
            raise ValidationException("Avatar file is empty")
        if len(content) > MAX_AVATAR_BYTES:
            raise ValidationException(
                "Avatar is too large",
                details={"size_bytes": len(content), "max_bytes": MAX_AVATAR_BYTES}
            )

        path = avatar_path(user.id, content_type)
        url = await self.storage.upload(path, content, content_type, access_token)
        result = raise_for_failure(await self.auth.update_profile(access_token, {"avatar": url}))

        log_business_event(
            "avatar_uploaded", user_id=user.id, path=path, filename=filename, size_bytes=len(content)
        )
        return result.user
