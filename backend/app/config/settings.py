"""
Application Settings for the Gallery backend

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Payment providers are optional individually: a provider whose keys
    are missing simply fails its own routes with a ConfigurationError.
    """

    # Supabase Configuration
    supabase_url: str
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: str
    supabase_jwt_secret: Optional[str] = None
    storage_bucket: str = "images"
    max_upload_bytes: int = 20 * 1024 * 1024

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    app_url: str = "http://localhost:3000"

    # CORS Configuration
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_standard_monthly_price_id: Optional[str] = None
    stripe_standard_yearly_price_id: Optional[str] = None
    stripe_premium_monthly_price_id: Optional[str] = None
    stripe_premium_yearly_price_id: Optional[str] = None
    stripe_commercial_monthly_price_id: Optional[str] = None
    stripe_commercial_yearly_price_id: Optional[str] = None

    # PayPal
    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_base_url: Optional[str] = None
    paypal_webhook_id: Optional[str] = None

    # Coinbase Commerce
    coinbase_commerce_api_key: Optional[str] = None
    coinbase_commerce_webhook_secret: Optional[str] = None
    coinbase_commerce_base_url: str = "https://api.commerce.coinbase.com"
    coinbase_commerce_api_version: str = "2018-03-22"

    # Outbound HTTP
    provider_timeout_seconds: float = 15.0

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def resolve_paypal_base_url(self) -> "Settings":
        """Pick the PayPal API host from the environment when not set explicitly."""
        if not self.paypal_base_url:
            if self.is_production:
                self.paypal_base_url = "https://api-m.paypal.com"
            else:
                self.paypal_base_url = "https://api-m.sandbox.paypal.com"
        self.paypal_base_url = self.paypal_base_url.rstrip("/")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
