"""
Application configuration management using Pydantic Settings
Handles all environment variables and application settings
"""

from pydantic_settings import BaseSettings
from typing import Optional, List
from functools import lru_cache


class Settings(BaseSettings):
    """Main application settings"""

    # Application Settings
    APP_NAME: str = "Goal Mania API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    STORE_NAME: str = "Goal Mania"
    STORE_TIMEZONE: str = "Europe/Rome"

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./goalmania.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_ECHO: bool = False

    # Cache Configuration
    CACHE_BACKEND: str = "memory"  # memory, redis
    CACHE_MAX_ENTRIES: int = 1000
    CACHE_DEFAULT_TTL: int = 300
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_MAX_CONNECTIONS: int = 50
    REVALIDATE_TOKEN: Optional[str] = None

    # Security Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # CORS Configuration
    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Email Configuration
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "orders@goalmania.it"
    SMTP_FROM_NAME: str = "Goal Mania"
    SMTP_START_TLS: bool = True
    DEFAULT_LANGUAGE: str = "it"

    # Jersey extras (added to the unit price)
    EXTRA_SHORTS_PRICE: float = 11.0
    EXTRA_SOCKS_PRICE: float = 17.0
    EXTRA_PLAYER_EDITION_PRICE: float = 5.0

    # Payment Providers
    DEFAULT_CURRENCY: str = "eur"
    PAYMENT_PROVIDER_TIMEOUT: float = 10.0
    PAYMENT_MAX_ATTEMPTS: int = 3
    PAYMENT_BACKOFF_BASE: float = 0.5
    PENDING_INTENT_TTL_HOURS: int = 48

    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None

    PAYPAL_CLIENT_ID: Optional[str] = None
    PAYPAL_CLIENT_SECRET: Optional[str] = None
    PAYPAL_MODE: str = "sandbox"  # sandbox, live

    MOLLIE_API_KEY: Optional[str] = None

    # Celery Configuration
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    CELERY_TIMEZONE: str = "Europe/Rome"

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def database_url_async(self) -> str:
        """Convert sync database URL to async"""
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
        elif self.DATABASE_URL.startswith("sqlite://"):
            return self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://")
        return self.DATABASE_URL

    @property
    def paypal_base_url(self) -> str:
        if self.PAYPAL_MODE == "live":
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"

    @property
    def webhook_base_url(self) -> str:
        return self.FRONTEND_URL.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """
    Create cached settings instance
    This ensures settings are loaded only once
    """
    return Settings()


# Global settings instance
settings = get_settings()
