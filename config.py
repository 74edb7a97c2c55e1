"""
Centralized configuration using Pydantic BaseSettings.
All environment variables are optional to prevent application startup failure.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Identity provider (JWT verification)
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    # Comma separated user ids that are always treated as admins
    admin_user_ids: str = Field(default="", alias="ADMIN_USER_IDS")

    # Relational store
    database_url: Optional[str] = Field(
        default="sqlite+aiosqlite:///./entitlements.db", alias="DATABASE_URL"
    )
    store_timeout_seconds: float = Field(default=10.0, alias="STORE_TIMEOUT_SECONDS")
    store_retry_attempts: int = Field(default=3, alias="STORE_RETRY_ATTEMPTS")
    store_retry_backoff_seconds: float = Field(default=0.2, alias="STORE_RETRY_BACKOFF_SECONDS")

    # Trial and plan rules
    trial_days: int = Field(default=7, alias="TRIAL_DAYS")
    default_plan_duration_days: int = Field(default=30, alias="DEFAULT_PLAN_DURATION_DAYS")
    seed_default_plan: bool = Field(default=True, alias="SEED_DEFAULT_PLAN")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")
    debug: bool = Field(default=False, alias="DEBUG")
    log_dir: str = Field(default="./logs", alias="LOG_DIR")

    def admin_ids(self) -> List[str]:
        return [uid.strip() for uid in self.admin_user_ids.split(",") if uid.strip()]


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.env and settings.env.lower() == "production")
