from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Chat API"

    database_url: str = "sqlite:///./chat.db"

    # JWT
    JWT_SECRET: str = "change-me"
    JWT_REFRESH_SECRET: str | None = None
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Privileged endpoints (X-API-Key)
    ADMIN_API_KEY: str | None = None

    # Group membership cache
    MEMBERSHIP_CACHE_ENABLED: bool = True
    MEMBERSHIP_CACHE_TTL: int = 300
    # shared cache for multi-worker deployments, e.g. redis://localhost:6379/0
    REDIS_URL: str | None = None

    # Cursor pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def refresh_secret(self) -> str:
        return self.JWT_REFRESH_SECRET or self.JWT_SECRET


settings = Settings()
