"""
Configuration and settings for the MarkDash API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "your-secret-key-change-in-production"


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Session tokens
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET)
    token_ttl_seconds: int = Field(default=60 * 60 * 24)

    # Key-value store backends
    database_url: Optional[str] = Field(default=None)
    redis_url: Optional[str] = Field(default=None)
    redis_namespace: str = Field(default="markdash")
    use_in_memory_backends: bool = Field(default=False)

    # HTTP surface
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    request_timeout_seconds: float = Field(default=30.0)
    max_body_bytes: int = Field(default=10 * 1024 * 1024)

    # Fixed-window rate limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_window_seconds: int = Field(default=15 * 60)
    rate_limit_max_requests: int = Field(default=100)
    auth_rate_limit_max_requests: int = Field(default=5)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
