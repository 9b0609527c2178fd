"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup: if a setting is malformed, the app fails fast with a clear
error message.

Marketplace rules (acceptance window, review period, revision limits,
split percentages) live here too, so there is one source of truth for
every deadline and fee the order engine applies.

Usage:
    from marketplace_escrow.config import get_settings
    settings = get_settings()
    print(settings.review_period_days)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from marketplace_escrow.domain.enums import TimeUnit
from marketplace_escrow.domain.settlement import MarketplacePolicy


class Settings(BaseSettings):
    """Central configuration for the marketplace escrow engine."""

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

    # --- Storage ---
    storage_backend: Literal["memory", "database"] = "memory"
    database_url: str = (
        "postgresql+asyncpg://marketplace:marketplace_dev"
        "@localhost:5432/marketplace_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours

    # --- Order lifecycle ---
    acceptance_window_hours: int = Field(default=24, ge=1)
    review_period_days: int = Field(default=3, ge=1)
    auto_release_payment: bool = True
    max_extension_days: int = Field(default=14, ge=1)

    # --- Revision / rejection workflow ---
    max_revision_requests: int = Field(default=2, ge=0)
    revision_request_timeout_value: int = Field(default=24, ge=1)
    revision_request_timeout_unit: TimeUnit = TimeUnit.HOURS
    rejection_response_timeout_value: int = Field(default=48, ge=1)
    rejection_response_timeout_unit: TimeUnit = TimeUnit.HOURS
    submission_review_period_days: int = Field(default=3, ge=1)
    enable_automatic_refunds: bool = True

    # --- Fees & disputes ---
    platform_fee_percent: int = Field(default=5, ge=0, le=100)
    partial_refund_buyer_percent: int = Field(default=50, ge=0, le=100)
    min_justification_length: int = Field(default=10, ge=1)
    admin_ids: str = "admin"

    # --- Timeout sweeper ---
    sweeper_enabled: bool = True
    sweep_interval_seconds: int = Field(default=60, ge=1)
    acceptance_reminder_hours: int = 2
    review_reminder_hours: int = 24
    notification_timeout_seconds: float = 5.0

    @model_validator(mode="after")
    def _split_fits_price(self) -> Settings:
        if self.platform_fee_percent + self.partial_refund_buyer_percent > 100:
            raise ValueError("PLATFORM_FEE_PERCENT + PARTIAL_REFUND_BUYER_PERCENT must not exceed 100")
        return self

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def admin_id_list(self) -> list[str]:
        """Parse comma-separated admin ids into a list."""
        if not self.admin_ids:
            return []
        return [a.strip() for a in self.admin_ids.split(",") if a.strip()]

    def to_policy(self) -> MarketplacePolicy:
        """Build the immutable policy object the services consume."""
        return MarketplacePolicy(
            acceptance_window_hours=self.acceptance_window_hours,
            review_period_days=self.review_period_days,
            auto_release_payment=self.auto_release_payment,
            max_extension_days=self.max_extension_days,
            max_revision_requests=self.max_revision_requests,
            revision_timeout_value=self.revision_request_timeout_value,
            revision_timeout_unit=self.revision_request_timeout_unit,
            rejection_timeout_value=self.rejection_response_timeout_value,
            rejection_timeout_unit=self.rejection_response_timeout_unit,
            submission_review_period_days=self.submission_review_period_days,
            enable_automatic_refunds=self.enable_automatic_refunds,
            platform_fee_percent=self.platform_fee_percent,
            partial_refund_buyer_percent=self.partial_refund_buyer_percent,
            min_justification_length=self.min_justification_length,
            acceptance_reminder_hours=self.acceptance_reminder_hours,
            review_reminder_hours=self.review_reminder_hours,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
