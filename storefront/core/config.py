"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(default="", description="Signing key JWK (JSON string) for JWT token verification")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_publishable_key: str = Field(default="", description="Stripe publishable key (for frontend)")
    checkout_currency: str = Field(default="eur", description="ISO currency code for checkout sessions")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Maison Luxe <onboarding@resend.dev>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Storefront URL for checkout redirects and email links",
    )
    store_name: str = Field(default="MaisonLuxe", description="Store name used in fulfillment remarks")

    # CJ Dropshipping
    cj_api_key: str = Field(default="", description="CJ Dropshipping API key")
    cj_api_url: str = Field(
        default="https://developers.cjdropshipping.com/api2.0/v1",
        description="CJ Dropshipping API base URL",
    )
    cj_request_timeout_seconds: float = Field(default=20.0, description="Timeout for CJ API calls")
    cj_price_markup: float = Field(default=3.0, description="Multiplier applied to CJ sell prices")
    cj_default_logistic_name: str = Field(default="USPS", description="Logistic name sent with CJ orders")
    cj_from_country_code: str = Field(default="CN", description="Origin country code sent with CJ orders")

    # Shipping quotes
    shipping_quote_cache_ttl: int = Field(default=300, description="Seconds a freight quote is reused")
    shipping_quote_cache_size: int = Field(default=100, description="Maximum cached freight quotes")

    # Password reset
    password_reset_ttl_minutes: int = Field(default=60, description="Minutes until a reset token expires")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
