"""Application configuration management."""
from pydantic import model_validator, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from sqlalchemy.engine.url import make_url, URL
from typing import Optional
import logging

SQLITE_LOCAL_URL = "sqlite+aiosqlite:///./nexara.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = SQLITE_LOCAL_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Redis (optional, falls back to in-memory locks)
    redis_url: str = ""

    # Application
    environment: str = "development"
    frontend_url: str = "https://nexara-battlefield.app"
    secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_cookie_name: str = "nexara_access_token"

    # Locking and retries
    lock_timeout_seconds: int = 10  # Shared timeout for account and match locks
    backend_retry_attempts: int = 3  # Attempts on transient database failures
    backend_retry_base_delay: float = 0.2
    backend_retry_max_delay: float = 2.0

    # Withdrawals (all values in whole coins)
    min_withdrawal_amount: int = 100
    withdrawal_window_enabled: bool = True
    withdrawal_window_start: str = "10:00"
    withdrawal_window_end: str = "22:00"
    withdrawal_window_timezone: str = "Asia/Kolkata"
    withdrawal_fee_tier_threshold: int = 5  # Completed withdrawals before tier fees apply

    # Top-ups
    min_topup_amount: int = 10
    max_topup_amount: int = 100000

    # Risk tagging (advisory only)
    risk_high_amount_threshold: int = 10000
    risk_very_high_amount_threshold: int = 50000
    risk_frequency_window_days: int = 7
    risk_frequency_limit: int = 3
    risk_high_ratio: float = 0.8
    risk_suspicious_score: int = 70

    # Daily reward
    daily_reward_streak: list[int] = [10, 15, 20, 25, 30, 40, 50]
    daily_reward_base: int = 10
    daily_reward_weekly_step: int = 5

    # Referrals (bonus coins, granted on the referred account's first approved top-up)
    referral_referrer_reward: int = 25
    referral_referred_reward: int = 25

    # Match economy
    max_match_slots: int = 100
    max_entry_fee: int = 10000

    # External matchmaking / room assignment service
    matchmaking_api_url: str = ""  # Empty disables upstream credential lookups
    matchmaking_timeout: float = 10.0

    @field_validator("withdrawal_window_start", "withdrawal_window_end")
    @classmethod
    def validate_window_time(cls, value: str) -> str:
        """Require HH:MM window bounds."""
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit()):
            raise ValueError(f"Invalid window time '{value}', expected HH:MM")
        if not (0 <= int(hours) <= 23 and 0 <= int(minutes) <= 59):
            raise ValueError(f"Invalid window time '{value}', expected HH:MM")
        return f"{int(hours):02d}:{int(minutes):02d}"

    @model_validator(mode="after")
    def validate_all_config(self):
        """Validate security configuration and normalize Postgres URLs."""
        logger = logging.getLogger(__name__)

        # Security validation
        if self.environment == "production":
            if self.secret_key == "dev-secret-key-change-in-production":
                raise ValueError("secret_key must be changed from default value in production")

        # Validate JWT algorithm
        if self.jwt_algorithm not in ["HS256", "HS384", "HS512"]:
            raise ValueError(f"Unsupported JWT algorithm: {self.jwt_algorithm}. Use HS256, HS384, or HS512.")

        if self.backend_retry_attempts < 1:
            raise ValueError("backend_retry_attempts must be at least 1")

        if not self.daily_reward_streak:
            raise ValueError("daily_reward_streak must list at least one reward")

        # Database URL normalization
        url = self.database_url

        if not url:
            logger.warning("Empty DATABASE_URL, using SQLite fallback")
            self.database_url = SQLITE_LOCAL_URL
            return self

        parsed: Optional[URL] = None
        try:
            parsed = make_url(url)
        except Exception as e:  # pragma: no cover
            logger.error(f"Failed to parse DATABASE_URL: {e}")
            logging.warning(f"Invalid DATABASE_URL '{url}'; falling back to default sqlite database.")
            self.database_url = SQLITE_LOCAL_URL
            return self

        drivername = parsed.drivername
        if drivername.startswith("postgres") and "+asyncpg" not in drivername:
            old_drivername = drivername
            parsed = parsed.set(drivername="postgresql+asyncpg")
            logger.info(f"Driver normalized: {old_drivername} -> {parsed.drivername}")
        # Use render_as_string to properly re-encode special characters in password
        self.database_url = parsed.render_as_string(hide_password=False)

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
