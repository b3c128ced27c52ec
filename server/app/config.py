"""Configuration settings for the Strapi cache server."""

import math
from pathlib import Path
from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


def _find_env_file() -> str:
    """Find .env file - check current dir, then parent (repository root)."""
    current = Path.cwd()

    # Check current directory
    if (current / ".env").exists():
        return str(current / ".env")

    # Check parent directory (when running from server/)
    if (current.parent / ".env").exists():
        return str(current.parent / ".env")

    # Check two levels up (when running from server/app/)
    if (current.parent.parent / ".env").exists():
        return str(current.parent.parent / ".env")

    # Default to current directory
    return ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server settings
    port: int = 3456
    host: str = "0.0.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Strapi backend
    strapi_url: str = Field(
        "http://localhost:1337",
        validation_alias=AliasChoices(
            "next_public_strapi_url",
            "next_public_strapi_api_url",
            "strapi_url",
        ),
    )
    strapi_api_token: str = ""
    strapi_timeout: float = 10.0

    # Response cache (milliseconds)
    strapi_cache_ttl_ms: int = 300_000  # 5 minutes
    strapi_cache_max_entries: int = 256
    forum_cache_ttl_ms: int = 60_000  # 1 minute
    faq_cache_ttl_ms: int = 300_000  # 5 minutes

    class Config:
        env_file = _find_env_file()
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    @field_validator(
        "strapi_cache_ttl_ms",
        "strapi_cache_max_entries",
        "forum_cache_ttl_ms",
        "faq_cache_ttl_ms",
        mode="before",
    )
    @classmethod
    def _finite_or_default(cls, value, info):
        """Fall back to the field default for junk like 'abc' or 'nan'.

        A blank value reads as 0 and is left for the cache to clamp.
        """
        if isinstance(value, str) and not value.strip():
            return 0
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = math.nan
        if not math.isfinite(number):
            return cls.model_fields[info.field_name].default
        return int(number)

    @property
    def strapi_base_url(self) -> str:
        """Strapi URL without a trailing slash."""
        return self.strapi_url.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
