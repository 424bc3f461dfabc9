"""
Configuration and settings for the portal backend.
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

    # Database (Postgres/MySQL expected, SQLite works for local runs)
    database_url: Optional[str] = Field(default=None)

    # Sessions
    session_secret: str = Field(default="dev-secret-change-me")
    session_max_age: int = Field(default=60 * 60 * 24 * 14)

    # Accounts
    allowed_email_domains: list[str] = Field(
        default_factory=lambda: ["diu.edu.bd", "s.diu.edu.bd"]
    )
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # S3-compatible storage for blog images
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    s3_public_domain: str = Field(default="https://cdn.example.test")

    upload_max_bytes: int = Field(default=5 * 1024 * 1024)
    upload_url_expires_in: int = Field(default=300)
    upload_key_prefix: str = Field(default="blog-images")

    # Page cache (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_cache_prefix: str = Field(default="clubportal:pages")
    page_cache_ttl: int = Field(default=3600)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
