"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    auto_migrate: bool = False  # Apply pending Alembic migrations on startup

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Digital Marketplace API"
    api_version: str = "0.1.0"
    api_description: str = "Order fulfillment engine for a multi-tenant digital goods marketplace"
    cors_origins: str = "*"  # Comma-separated list

    # Admin Authentication
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD_HASH: str = ""  # argon2 hash of the admin password
    ADMIN_JWT_SECRET: str = ""  # JWT secret for admin tokens (generate with: openssl rand -hex 32)
    admin_token_expire_hours: int = 24

    # Vendor sessions
    vendor_session_ttl_hours: int = 24 * 7

    # Payment Gateway - AbacatePay (PIX)
    abacatepay_api_key: str = ""
    abacatepay_webhook_secret: str = ""  # Falls back to the API key when empty
    abacatepay_base_url: str = "https://api.abacatepay.com/v1"
    abacatepay_timeout_seconds: float = 15.0
    public_base_url: str = "http://localhost:8000"  # Return/completion URL for checkout

    # Email - Resend
    resend_api_key: str = ""
    resend_base_url: str = "https://api.resend.com"
    email_from: str = "Entrega Digital <onboarding@resend.dev>"
    email_timeout_seconds: float = 10.0
    notification_timeout_seconds: float = 30.0

    # Storefront
    default_store_name: str = "Nossa Loja"
    whatsapp_country_code: str = "55"
    whatsapp_preview_lines: int = 5

    # Background jobs
    background_jobs_enabled: bool = True
    payment_poll_interval_seconds: int = 60
    expiry_sweep_interval_seconds: int = 3600
    pending_order_ttl_hours: int = 24

    # Withdrawals
    withdrawal_fee_minor: int = 300  # R$3.00
    withdrawal_min_minor: int = 500  # R$5.00

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "digital-marketplace-api"
    environment: str = "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        This prevents silent failures that only manifest at runtime.
        """
        errors: list[str] = []

        # DATABASE_URL is absolutely required
        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.ADMIN_JWT_SECRET and len(self.ADMIN_JWT_SECRET) < 32:
            errors.append("ADMIN_JWT_SECRET must be at least 32 characters")

        for name in (
            "payment_poll_interval_seconds",
            "expiry_sweep_interval_seconds",
            "pending_order_ttl_hours",
            "vendor_session_ttl_hours",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be positive")

        if self.withdrawal_fee_minor < 0 or self.withdrawal_min_minor <= self.withdrawal_fee_minor:
            errors.append("WITHDRAWAL_MIN_MINOR must exceed WITHDRAWAL_FEE_MINOR")

        # If we have errors, fail immediately with clear messaging
        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    @property
    def webhook_secret(self) -> str:
        """Secret used to verify gateway webhooks."""
        return self.abacatepay_webhook_secret or self.abacatepay_api_key

    @property
    def allowed_cors_origins(self) -> list[str]:
        """Parse the comma-separated CORS origin list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
