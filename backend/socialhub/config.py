"""Application configuration using Pydantic settings."""

import base64
import binascii
import os
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The instance is frozen: it is read once at startup and passed to
    everything that needs it.
    """

    # Application
    APP_NAME: str = "SocialHub"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./socialhub.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # JWT: one secret per token type so a token of one kind never verifies as another
    ALGORITHM: str = "HS256"
    JWT_ACCESS_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_EMAIL_SECRET: str
    JWT_RESET_SECRET: str
    JWT_PENDING_2FA_SECRET: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 5
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    PENDING_2FA_TOKEN_EXPIRE_SECONDS: int = 720
    EMAIL_TOKEN_EXPIRE_MINUTES: int = 60
    RESET_TOKEN_EXPIRE_MINUTES: int = 60

    # Two-factor authentication
    TWO_FA_MASTER_KEY: str  # base64-encoded AES key (16, 24 or 32 bytes)
    TWO_FA_ISSUER: str = "SocialHub"
    TWO_FA_MAX_FAILED_ATTEMPTS: int = 5
    TWO_FA_LOCKOUT_MINUTES: int = 15
    RECOVERY_CODE_COUNT: int = 10
    PENDING_2FA_SINGLE_USE: bool = True

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Refresh cookie
    REFRESH_COOKIE_NAME: str = "refresh-token"
    REFRESH_COOKIE_PATH: str = "/auth"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # 'text' or 'json' (json for production)

    # Email (SMTP): emails are skipped when SMTP_HOST is unset
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "noreply@socialhub.app"
    SMTP_FROM_NAME: str = "SocialHub"
    SMTP_USE_TLS: bool = True
    APP_BASE_URL: str = "http://localhost:5173"

    # Prometheus metrics
    METRICS_ENABLED: bool = True
    METRICS_USERNAME: str = "admin"
    METRICS_PASSWORD: str = "metrics_admin"

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore", frozen=True
    )

    @field_validator(
        "JWT_ACCESS_SECRET",
        "JWT_REFRESH_SECRET",
        "JWT_EMAIL_SECRET",
        "JWT_RESET_SECRET",
        "JWT_PENDING_2FA_SECRET",
    )
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Reject empty secrets, and short ones in production."""
        if not v:
            raise ValueError("JWT secrets must not be empty")

        environment = os.getenv("ENVIRONMENT", "development")
        if environment == "production" and len(v) < 32:
            raise ValueError(
                "Insecure JWT secret detected in production! "
                "Generate a secure key with: openssl rand -hex 32"
            )
        return v

    @field_validator("TWO_FA_MASTER_KEY")
    @classmethod
    def validate_master_key(cls, v: str) -> str:
        """The master key must decode to a valid AES key length."""
        try:
            raw = base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("TWO_FA_MASTER_KEY must be base64 encoded") from exc

        if len(raw) not in (16, 24, 32):
            raise ValueError(
                "TWO_FA_MASTER_KEY must decode to 16, 24 or 32 bytes. "
                "Generate one with: openssl rand -base64 32"
            )
        return v

    @property
    def two_fa_master_key_bytes(self) -> bytes:
        return base64.b64decode(self.TWO_FA_MASTER_KEY)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
