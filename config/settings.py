"""
Configuration settings for the application
"""
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Subscription plans exposed to the client
PLAN_MONTHLY = "monthly"
PLAN_LIFETIME = "lifetime"

STORAGE_MEMORY = "memory"
STORAGE_DATABASE = "database"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,  # Allow both field name and alias
        extra="ignore",
    )

    # Admin dashboard gate
    admin_password: Optional[str] = Field(default=None, alias="ADMIN_PASSWORD")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_pro_monthly_price_id: Optional[str] = Field(
        default="prod_U0FqUEKEZX2zSS", alias="STRIPE_PRO_MONTHLY_PRICE_ID"
    )
    stripe_pro_lifetime_price_id: Optional[str] = Field(
        default="prod_U0DgHO1hpqRD70", alias="STRIPE_PRO_LIFETIME_PRICE_ID"
    )

    # Public URLs
    public_url: Optional[str] = Field(default="http://localhost:3000", alias="PUBLIC_URL")
    frontend_url: Optional[str] = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./gardengrid.db", alias="DATABASE_URL")
    # Backend for users and the webhook event log
    storage_backend: str = Field(
        default=STORAGE_DATABASE,
        validation_alias=AliasChoices("IDENTITY_BACKEND", "STORAGE_BACKEND"),
    )
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    rate_limit_per_minute: int = Field(default=60, alias="RATE_LIMIT_PER_MINUTE")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")

    @property
    def billing_enabled(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def base_url(self) -> str:
        return (self.public_url or "http://localhost:3000").rstrip("/")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.env and settings.env.lower() == "production")
