# app/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal

class Settings(BaseSettings):
    # App
    ENV: str = "development"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True

    # Storefront origins allowed by CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Payment gateway ("fake" keeps everything in-process for local development)
    PAYMENT_GATEWAY: Literal["paypal", "fake"] = "paypal"

    # PayPal
    PAYPAL_CLIENT_ID: str | None = None
    PAYPAL_CLIENT_SECRET: str | None = None
    PAYPAL_BASE_URL: str = "https://api-m.sandbox.paypal.com"
    PAYPAL_CURRENCY: str = "PHP"
    PAYPAL_TIMEOUT_SECONDS: float = 10.0
    PAYPAL_TOKEN_RETRY_ATTEMPTS: int = 3
    PAYPAL_READ_RETRY_ATTEMPTS: int = 3


    model_config = SettingsConfigDict(
        env_file=".env",
        extra="forbid",
    )


settings = Settings()
