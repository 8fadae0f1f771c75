"""
Configuration and settings for the RiceHub backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected, any SQLAlchemy URL accepted)
    database_url: Optional[str] = Field(default=None)

    # Public base URL that blob paths are appended to
    cdn_url: str = Field(default="")

    # Access token verification
    jwt_algorithm: str = Field(default="ES256")
    jwt_public_key_path: Optional[str] = Field(default=None)
    jwt_secret: Optional[str] = Field(default=None)

    # S3-compatible storage (Tencent COS)
    cos_endpoint: Optional[str] = Field(default=None)
    cos_region: Optional[str] = Field(default=None)
    cos_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Rate limits (Redis)
    redis_url: Optional[str] = Field(default=None)
    disable_rate_limits: bool = Field(default=False)

    # Read-only mode for mutations
    maintenance: bool = Field(default=False)

    max_previews_per_rice: int = Field(default=10, ge=1)
    blacklisted_words: list[str] = Field(default_factory=list)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
