# jurisly/storage/base.py
from abc import ABC, abstractmethod

ALLOWED_AVATAR_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def avatar_path(user_id: str, content_type: str) -> str:
    """avatars/<user_id>.<ext>; one object per user, overwritten on re-upload"""
    # Extension follows the validated content type, never the client filename
    return f"avatars/{user_id}.{ALLOWED_AVATAR_TYPES[content_type]}"


class AvatarStorage(ABC):
    """Upload-by-path object storage with public URLs"""

    @abstractmethod
    async def upload(self, path: str, content: bytes, content_type: str, access_token: str) -> str:
        """Store (upsert) the object and return its public URL"""

    @abstractmethod
    def public_url(self, path: str) -> str:
        pass

    async def aclose(self) -> None:
        pass
