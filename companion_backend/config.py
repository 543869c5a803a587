"""
Configuration and settings for the companion backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=8000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Database (any SQLAlchemy URL; Postgres in production)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="COMPANION_USE_IN_MEMORY_BACKENDS"
    )

    # Page revalidation (Redis pub/sub)
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    revalidate_channel: str = Field(
        default="companions:revalidate", validation_alias="REVALIDATE_CHANNEL"
    )

    # Identity provider session tokens
    auth_jwt_key: Optional[str] = Field(default=None, validation_alias="AUTH_JWT_KEY")
    auth_jwt_algorithms: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["RS256"], validation_alias="AUTH_JWT_ALGORITHMS"
    )
    auth_jwt_audience: Optional[str] = Field(
        default=None, validation_alias="AUTH_JWT_AUDIENCE"
    )
    auth_jwt_issuer: Optional[str] = Field(
        default=None, validation_alias="AUTH_JWT_ISSUER"
    )

    # Companion creation quota
    default_companion_limit: int = Field(
        default=5, ge=0, validation_alias="DEFAULT_COMPANION_LIMIT"
    )
    feature_limits: dict[str, int] = Field(
        default_factory=lambda: {"3_companion_limit": 3, "10_companion_limit": 10},
        validation_alias="FEATURE_LIMITS",
    )
    unlimited_plan: str = Field(default="pro", validation_alias="UNLIMITED_PLAN")
    unlimited_permission: str = Field(
        default="org:feature:unlimited_companions",
        validation_alias="UNLIMITED_PERMISSION",
    )

    @field_validator("auth_jwt_algorithms", mode="before")
    @classmethod
    def _split_algorithms(cls, value):
        # AUTH_JWT_ALGORITHMS=RS256,ES256
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
