"""
Application configuration.
Values come from environment variables, with a .env file as the local
development fallback.
"""
import os
import logging
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "postgresql+asyncpg://localhost/marketplace"

    # Auth (tokens are issued by the account service; we only decode them)
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
    JWT_REFRESH_SECRET: str = ""
    JWT_ACCESS_EXPIRES_IN: int = 60 * 24  # minutes
    JWT_REFRESH_EXPIRES_IN: int = 60 * 24 * 30

    # Stripe
    STRIPE_API_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE: int = 300  # seconds
    STRIPE_CHECKOUT_SUCCESS_URL: str = ""
    STRIPE_CHECKOUT_CANCEL_URL: str = ""
    STRIPE_CURRENCY: str = "usd"

    # Marketplace money rules
    PLATFORM_FEE_RATE: float = 0.10
    BOOKING_MIN_DOWN_PAYMENT_RATE: float = 0.20
    BOOKING_REQUIRED_DOWN_PAYMENT_RATE: float = 0.30

    class Config:
        env_file = ".env"


settings = Settings()

# Validate critical security settings
if not settings.JWT_SECRET:
    raise ValueError(
        "JWT_SECRET is not set. It must exist as a JWT_SECRET environment variable. "
        "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )
