"""
Application settings loaded from environment variables (and .env when present).
Payment provider secrets are optional so the API still boots without them;
the endpoints that need them answer 503 instead.
"""
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    DATABASE_URL: str = "sqlite:///./dreamcatcher.db"
    ENVIRONMENT: str = "development"

    # Auth
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PRICE_ID_MONTHLY: Optional[str] = None
    STRIPE_PRICE_ID_YEARLY: Optional[str] = None

    # Apple in-app purchases
    APPLE_SHARED_SECRET: Optional[str] = None
    APPLE_VERIFY_URL_PRODUCTION: str = "https://buy.itunes.apple.com/verifyReceipt"
    APPLE_VERIFY_URL_SANDBOX: str = "https://sandbox.itunes.apple.com/verifyReceipt"

    # Used for Stripe redirect URLs and the OpenRouter referer header
    APP_PUBLIC_URL: str = "http://localhost:4000"

    # AI analyst (OpenRouter)
    OPENROUTER_API_KEY: Optional[str] = None
    OPENROUTER_MODEL: str = "deepseek/deepseek-chat-v3.1:free"

    # Comma separated; "*" allows any origin
    CORS_ORIGINS: str = "*"

    @field_validator("DATABASE_URL")
    @classmethod
    def normalize_database_url(cls, value: str) -> str:
        # Render/Heroku style URLs are not accepted by SQLAlchemy 2
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://"):]
        return value

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()
