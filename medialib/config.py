from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", frozen=True, extra="ignore")

    APP_NAME: str = "Media Library"
    CORS_ALLOW_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    # storage layout, relative to CONTENT_ROOT
    CONTENT_ROOT: str = "content"
    ORIGINALS_PREFIX: str = "uploads/media/originals"
    DERIVED_PREFIX: str = "uploads/media/derived"
    PUBLIC_URL_PREFIX: str = "/content"

    DATABASE_URL_ASYNC: str = "sqlite+aiosqlite:///./medialib.db"  # mysql+asyncmy://user:pass@IP:3306/media?charset=utf8mb4

    WEB_QUALITY: int = 85
    VARIANT_QUALITY: int = 85
    MAX_UPLOAD_BYTES: int = 20 * 1024 * 1024
    MAX_DOWNLOAD_BYTES: int = 40 * 1024 * 1024
    TRANSFORM_MAX_CONCURRENCY: int = 4
    SEED_DEFAULT_SIZES: bool = True

    UNSPLASH_ACCESS_KEY: str = ""
    UNSPLASH_API_URL: str = "https://api.unsplash.com"
    UNSPLASH_DOWNLOAD_SIZE: str = "full"
    EXTERNAL_TIMEOUT_SECONDS: float = 20.0
    EXTERNAL_DOWNLOAD_TIMEOUT_SECONDS: float = 120.0

@lru_cache
def get_settings() -> Settings:
    return Settings()
