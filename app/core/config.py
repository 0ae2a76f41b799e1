from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./catalog.db"
    # Tests point this at sqlite:///:memory:
    DATABASE_URL_OVERRIDE: str | None = None

    # Local object store (MVP). Production should use a bucket with a CDN in front.
    UPLOAD_ROOT: str = "uploads"
    PUBLIC_BASE_URL: str = "http://localhost:8000/static/uploads"

    MAX_IMAGES_PER_ITEM: int = 5
    MAX_IMAGE_BYTES: int = 50 * 1024 * 1024

    SEARCH_DEBOUNCE_MS: int = 500
    NEWS_PAGE_SIZE: int = 10
    ADS_PAGE_SIZE: int = 8

    READ_ONLY: bool = False

    @property
    def database_url(self) -> str:
        return (self.DATABASE_URL_OVERRIDE or "").strip() or self.DATABASE_URL


settings = Settings()
