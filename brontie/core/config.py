from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Brontie Settlement API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Voucher lifecycle and merchant payout settlement"

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "brontie"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # JWT (admin and cron triggers)
    SECRET_KEY: str = "change-this-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_CURRENCY: str = "eur"

    # Fees and commission
    STRIPE_FEE_PERCENT: float = 0.014
    STRIPE_FEE_FIXED: float = 0.25
    DEFAULT_COMMISSION_RATE: float = 0.10
    COMMISSION_GRACE_DAYS: int = 90

    # Vouchers
    VOUCHER_VALIDITY_DAYS: int = 5 * 365

    # Settlement
    MERCHANT_CACHE_TTL_SECONDS: int = 300
    REQUIRE_PAYOUTS_ENABLED: bool = False
    CLAIM_STALE_AFTER_MINUTES: int = 30
    MIN_TRANSFER_AMOUNT: float = 0.50

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
