from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./database.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # IANA timezone used to decide what "today" is for theme windows
    TIMEZONE: str = "Asia/Tokyo"

    # Front-end pages
    STATIC_DIR: str = "public"
    STAFF_PAGE_PATH: str = "/staff"

    # Overrides the request base URL when building the staff URL
    PUBLIC_BASE_URL: Optional[str] = None

    # Origins allowed by CORS, JSON list in the environment
    CORS_ORIGINS: List[str] = ["*"]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
