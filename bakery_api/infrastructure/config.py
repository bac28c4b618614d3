"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False
    app_url: str = "http://localhost:3000"

    # Storage
    store_backend: str = "memory"  # memory | database
    database_url: str = "postgresql+asyncpg://bakery:bakery_dev_password@db:5432/bakery"

    # Authentication
    admin_api_key: str = "dev-admin-key-change-in-production"
    jwt_secret: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = "authenticated"

    # Payments
    stripe_secret_key: str = "sk_test_change_me"
    stripe_webhook_secret: str = "whsec_dev_change_in_production"
    stripe_api_base: str = "https://api.stripe.com"
    stripe_webhook_tolerance_seconds: int = 300
    # A "processing" event older than this is treated as abandoned and retried
    webhook_processing_lease_seconds: int = 120
    currency: str = "usd"

    # Orders
    default_tax_rate: float = 0.08
    pickup_location: str = "Main Bakery"
    order_number_prefix: str = "HS"
    business_settings_ttl_seconds: int = 300

    # Loyalty
    loyalty_points_per_reward: int = 100
    loyalty_reward_value: Decimal = Decimal("5.00")
    loyalty_code_prefix: str = "LOYALTY"

    # Rate limiting
    rate_limit_backend: str = "memory"  # memory | redis
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_window_seconds: int = 60

    # Email
    email_api_key: str | None = None
    email_api_base: str = "https://api.resend.com"
    email_from: str = "Happy Sourdough <orders@happysourdough.com>"

    # Logging
    log_level: str = "INFO"

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
