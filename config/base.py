from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings


class CommonSettings(BaseSettings):
    """Settings shared by every environment; subclasses pick the env file."""

    APP_ENV: str = "local"
    SECRET_KEY: str | None = None
    DEBUG: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    # JSON list or comma-separated origins
    CORS_ORIGINS: str = ""

    # Base URL used when building signed download links
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Invoicing
    ADMIN_FEE_RATE: Decimal = Decimal("0.20")
    INVOICE_DUE_DAYS: int = 7

    # Verification workflow
    VERIFICATION_DEADLINE_DAYS: int = 5
    PREPARATION_JOB_TIMEOUT_SECONDS: int = 1800
    DOWNLOAD_URL_EXPIRE_SECONDS: int = 3600

    # Payments
    JOB_LOCK_LEASE_SECONDS: int = 300
    SIDE_EFFECT_MAX_ATTEMPTS: int = 5
    SWISH_API_URL: str | None = None
    SWISH_API_TIMEOUT_SECONDS: float = 10.0

    BUSINESS_CACHE_TTL_SECONDS: int = 300
