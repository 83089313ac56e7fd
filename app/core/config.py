import os
import tempfile
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "chat-attachments"

    AUTH_JWT_SECRET: str = "change_me_auth"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8081"

    REDIS_URL: str

    S3_ENDPOINT: str
    S3_ACCESS_KEY: str
    S3_SECRET_KEY: str
    S3_REGION: str = "us-east-1"
    S3_USE_SSL: bool = False
    # Base for durable public URLs; falls back to S3_ENDPOINT when empty.
    S3_PUBLIC_URL: str = ""

    ATTACHMENTS_BUCKET: str = "chat-attachments"
    AVATARS_BUCKET: str = "avatars"
    MAX_ATTACHMENT_BYTES: int = 52428800  # 50 MB
    MAX_AVATAR_BYTES: int = 5242880  # 5 MB

    SIGNED_URL_TTL_SECONDS: int = 3600
    UPLOAD_CACHE_CONTROL: str = "max-age=3600"
    UPLOAD_MAX_ATTEMPTS: int = 1
    UPLOAD_RETRY_DELAY_SECONDS: float = 1.0

    ATTACHMENT_TEMP_DIR: str = ""
    TEMP_FILE_MAX_AGE_HOURS: int = 24
    TEMP_CLEANUP_INTERVAL_SECONDS: float = 3600.0

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def temp_dir(self) -> str:
        raw = str(self.ATTACHMENT_TEMP_DIR or "").strip()
        return raw or os.path.join(tempfile.gettempdir(), "chat-attachments-cache")

    @property
    def public_url_base(self) -> str:
        return (str(self.S3_PUBLIC_URL or "").strip() or self.S3_ENDPOINT).rstrip("/")

settings = Settings()
