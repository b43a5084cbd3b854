from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "Asia/Kolkata"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Redis (arq worker)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Identity provider
    # Default placeholder keeps local/test runs from failing when real
    # credentials are not required. Real deployments should override via env.
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"

    # Credit ledger
    DEFAULT_CREDIT_LIMIT: Decimal = Decimal("5000")
    PENDING_PAYMENT_TTL_HOURS: int = 24

    # Platform commission
    DEFAULT_COMMISSION_RATE: Decimal = Decimal("0.05")
    COMMISSION_DUE_DAYS: int = 30

    CURRENCY_SYMBOL: str = "₹"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
