from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

PLACEHOLDER_SUPABASE_URL = "https://placeholder.supabase.co"
PLACEHOLDER_SUPABASE_KEY = "placeholder-key"


class Settings(BaseSettings):
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "text"
    ENABLE_FILE_LOGGING: bool = False
    LOG_DIR: str = "logs"

    # "auto" picks hosted mode when the identity service is configured
    BACKEND_MODE: Literal["auto", "hosted", "local"] = "auto"

    # Hosted identity / object storage (GoTrue + storage REST API)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_AVATAR_BUCKET: str = "avatars"
    AUTH_REDIRECT_URL: str = "http://localhost:5173"

    # Hosted chat table
    DATABASE_URL: str = "sqlite+aiosqlite:///./jurisly.db"
    AUTO_CREATE_TABLES: bool = True

    # Local fallback mode
    LOCAL_DATA_DIR: str = "./data"
    LOCAL_AUTO_VERIFY: bool = True

    # AI reply workflow
    N8N_WEBHOOK_URL: str = ""
    WEBHOOK_TIMEOUT_SECONDS: float = 30.0

    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    AUTH_RATE_LIMIT: str = "10/minute"

    FEED_QUEUE_SIZE: int = 256

    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    @property
    def hosted_identity_configured(self) -> bool:
        return bool(
            self.SUPABASE_URL
            and self.SUPABASE_ANON_KEY
            and self.SUPABASE_URL != PLACEHOLDER_SUPABASE_URL
            and self.SUPABASE_ANON_KEY != PLACEHOLDER_SUPABASE_KEY
        )

    @property
    def resolved_backend_mode(self) -> str:
        """'hosted' or 'local', decided once from BACKEND_MODE and credentials"""
        if self.BACKEND_MODE == "auto":
            return "hosted" if self.hosted_identity_configured else "local"
        return self.BACKEND_MODE


settings = Settings()
