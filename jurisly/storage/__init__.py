from .base import ALLOWED_AVATAR_TYPES, AvatarStorage, avatar_path
from .hosted import HostedAvatarStorage
from .local import LocalAvatarStorage

__all__ = [
    "ALLOWED_AVATAR_TYPES",
    "AvatarStorage",
    "HostedAvatarStorage",
    "LocalAvatarStorage",
    "avatar_path",
]
