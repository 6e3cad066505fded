"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup; if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from escrow_governance.config import get_settings
    settings = get_settings()
    print(settings.settlement_percentage)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the escrow & governance engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://escrow:escrow_dev"
        "@localhost:5432/escrow_governance"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_events_channel_prefix: str = "escrow_governance"
    redis_rate_key: str = "rates:crypto_usd"

    # --- Escrow ---
    min_deposit_usd: Decimal = Field(default=Decimal("0"), ge=0)

    # --- Governance ---
    voting_duration_days: int = Field(default=5, ge=1)
    min_vote_activity_points: int = 9
    min_proposal_activity_points: int = 10
    vote_activity_reward: int = 5
    completion_activity_reward: int = 10

    # Share of the remaining escrow that a dispute may pay out (percent).
    settlement_percentage: Decimal = Field(default=Decimal("90"), gt=0, le=100)
    # Smallest non-zero crypto payout; positive amounts below it are raised to it.
    min_payout_crypto: Decimal = Field(default=Decimal("0.0001"), gt=0)
    fallback_crypto_price_usd: Decimal = Field(default=Decimal("3000"), gt=0)

    # --- Concurrency ---
    max_conflict_retries: int = Field(default=3, ge=1)

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
