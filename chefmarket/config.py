"""
Configuration and settings for the marketplace API.
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

    api_prefix: str = Field(default="/api")
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected; any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    seed_catalog_on_startup: bool = Field(default=True)

    # Sessions
    redis_url: Optional[str] = Field(default=None)
    session_key_prefix: str = Field(default="chefmarket:session:")
    session_cookie_name: str = Field(default="chefmarket.sid")
    session_max_age_seconds: int = Field(default=30 * 24 * 60 * 60)

    # Browser clients served from another origin
    cors_origins: list[str] = Field(default_factory=list)

    # S3-compatible storage for uploads
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    s3_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    upload_url_expires_seconds: int = Field(default=900)

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
