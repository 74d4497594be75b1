"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports two families of modes:
    - DEVELOPMENT: Uses the mock payment gateway and mock mailer (no API keys needed)
    - STAGING / PRODUCTION: Uses Stripe and SendGrid

The storage backend (file, postgres, kv) is chosen independently of the mode,
so a development box can still run against a local Postgres.

Usage:
    from dormside.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # Use mock services
    else:
        # Use real APIs
"""

import logging
import sys
from decimal import Decimal
from enum import Enum
from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with mock services
        PRODUCTION: Live environment with real API integrations
        STAGING: Pre-production testing with real APIs but test keys
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class StorageBackend(str, Enum):
    """Where orders and the store-open flag are persisted."""
    FILE = "file"
    POSTGRES = "postgres"
    KV = "kv"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Sensitive values (API keys, admin password, session secret) should NEVER
    be committed to version control.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Dormside Eats",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # ==========================================================================
    # STORAGE
    # ==========================================================================

    storage_backend: Optional[StorageBackend] = Field(
        default=None,
        description="file, postgres or kv; inferred from the URLs when unset"
    )
    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection URL (postgresql+psycopg://...)"
    )
    kv_url: Optional[str] = Field(
        default=None,
        description="Redis URL used as the key-value order store"
    )
    data_directory: str = Field(
        default="data",
        description="Directory for the JSON data files"
    )
    file_lock_timeout: int = Field(
        default=30,
        description="Seconds to wait for a data file lock"
    )
    read_only_filesystem: bool = Field(
        default=False,
        description="Set on serverless hosts where the file backend cannot write"
    )
    storage_timeout_seconds: float = Field(
        default=5.0,
        description="Connect/socket timeout for the storage backends"
    )

    # ==========================================================================
    # REDIS / CELERY
    # ==========================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the Celery broker"
    )
    celery_task_always_eager: bool = Field(
        default=False,
        description="Run Celery tasks inline (tests and single-process dev)"
    )

    # ==========================================================================
    # STRIPE PAYMENT GATEWAY
    # ==========================================================================

    stripe_secret_key: Optional[str] = Field(
        default=None,
        description="Stripe API secret key (sk_live_... or sk_test_...)"
    )
    stripe_webhook_secret: Optional[str] = Field(
        default=None,
        description="Stripe webhook signing secret (whsec_...)"
    )
    stripe_currency: str = Field(
        default="usd",
        description="Default currency for payments"
    )
    gateway_timeout_seconds: float = Field(
        default=15.0,
        description="Upper bound on a single payment gateway call"
    )
    mock_payment_failure_rate: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Probability the mock gateway declines an intent"
    )
    mock_payment_min_latency: float = Field(default=0.0, ge=0.0)
    mock_payment_max_latency: float = Field(default=0.0, ge=0.0)

    # ==========================================================================
    # ADMIN SESSION
    # ==========================================================================

    admin_username: Optional[str] = Field(default=None)
    admin_password: Optional[str] = Field(default=None)
    admin_session_secret: Optional[str] = Field(
        default=None,
        description="HMAC key for the admin session cookie"
    )
    admin_session_ttl_seconds: int = Field(
        default=60 * 60 * 24 * 7,
        description="Lifetime of an admin session"
    )
    secure_cookies: bool = Field(
        default=True,
        description="Mark the admin cookie Secure (disable for plain-http dev)"
    )

    # ==========================================================================
    # SENDGRID (EMAIL RECEIPTS)
    # ==========================================================================

    sendgrid_api_key: Optional[str] = Field(
        default=None,
        description="SendGrid API Key"
    )
    sendgrid_from_email: str = Field(
        default="orders@dormside-eats.com",
        description="From email address for receipts"
    )
    admin_email: str = Field(
        default="dormsideeats@gmail.com",
        description="Store inbox that receives a copy of every receipt"
    )

    # ==========================================================================
    # BUSINESS CONFIGURATION
    # ==========================================================================

    store_name: str = Field(
        default="Dormside",
        description="Name printed on receipts"
    )
    delivery_fee: Decimal = Field(
        default=Decimal("3.00"),
        ge=0,
        description="Flat delivery charge"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @field_validator("storage_backend", mode="before")
    @classmethod
    def validate_storage_backend(cls, v):
        if v is None or isinstance(v, StorageBackend) or v == "":
            return v or None
        return StorageBackend(v.lower())

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def use_real_services(self) -> bool:
        """Check if real external services should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    @property
    def resolved_storage_backend(self) -> StorageBackend:
        """Explicit backend if configured, otherwise inferred from the URLs."""
        if self.storage_backend is not None:
            return self.storage_backend
        if self.database_url:
            return StorageBackend.POSTGRES
        if self.kv_url:
            return StorageBackend.KV
        return StorageBackend.FILE

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if not self.stripe_secret_key:
                missing.append("STRIPE_SECRET_KEY")
            if not self.stripe_webhook_secret:
                missing.append("STRIPE_WEBHOOK_SECRET")
            if not self.sendgrid_api_key:
                missing.append("SENDGRID_API_KEY")

        if not self.admin_session_secret:
            missing.append("ADMIN_SESSION_SECRET")
        if not (self.admin_username and self.admin_password):
            missing.append("ADMIN_USERNAME/ADMIN_PASSWORD")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Configured application settings
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured root logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)

    return logging.getLogger("dormside")
