from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..auth.base import AuthUser


class Language(str, Enum):
    EN = "en"
    HI = "hi"


class AIMode(str, Enum):
    TEXT = "text"
    VOICE_TEXT = "voice-text"


class Theme(str, Enum):
    DARK = "dark"
    PURPLE = "purple"
    BLUE = "blue"
    CUSTOM = "custom"


class Preferences(BaseModel):
    language: Language = Language.EN
    voice_enabled: bool = True
    ai_mode: AIMode = AIMode.TEXT
    theme: Theme = Theme.DARK
    notification_tone: bool = True


class PreferencesUpdate(BaseModel):
    language: Optional[Language] = None
    voice_enabled: Optional[bool] = None
    ai_mode: Optional[AIMode] = None
    theme: Optional[Theme] = None
    notification_tone: Optional[bool] = None


class UserOut(BaseModel):
    id: str
    email: str
    name: str
    avatar: Optional[str] = None
    date_of_birth: Optional[date] = None
    account_type: Optional[str] = None
    email_verified: bool

    @classmethod
    def from_auth_user(cls, user: AuthUser) -> "UserOut":
        meta = user.metadata
        return cls(
            id=user.id,
            email=user.email,
            name=user.display_name,
            avatar=meta.get("avatar"),
            date_of_birth=meta.get("date_of_birth") or None,
            account_type=meta.get("account_type"),
            email_verified=user.email_verified,
        )


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    avatar: Optional[str] = None
    date_of_birth: Optional[date] = None
    account_type: Optional[str] = Field(None, max_length=50)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
