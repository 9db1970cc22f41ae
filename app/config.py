"""
Application settings loaded from environment variables.

Uses pydantic-settings for type-safe configuration with .env file support.
"""

from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global application settings."""

    # App
    APP_NAME: str = "KESC Wallet"
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # OneRamp (fiat ramp provider)
    ONERAMP_API_URL: str = ""
    ONERAMP_API_KEY: str = ""
    ONERAMP_TIMEOUT_SECONDS: float = 30.0
    ONERAMP_MAX_RETRIES: int = 2        # transport-level retries per call, same idempotency key

    # Ramp defaults
    COUNTRY: str = "UG"
    CHAIN: str = ""
    CRYPTO_TYPE: str = "USDC"
    OPERATOR: str = ""

    # Transaction bounds (fiat units of COUNTRY)
    MIN_TRANSACTION_AMOUNT: Decimal = Decimal("2000")
    MAX_TRANSACTION_AMOUNT: Decimal = Decimal("20000")

    # Status reconciliation
    STATUS_POLL_INTERVAL_SECONDS: float = 5.0
    STATUS_POLL_DEADLINE_SECONDS: float | None = None   # None = poll until terminal
    ENFORCE_QUOTE_EXPIRY: bool = True

    # Chain
    RPC_URL: str = "http://localhost:8545"
    KESC_CONTRACT_ADDRESS: str = ""
    WALLET_PRIVATE_KEY: str = ""
    TOKEN_DECIMALS: int = 18
    CONFIRMATION_POLL_INTERVAL_SECONDS: float = 2.0
    CONFIRMATION_TIMEOUT_SECONDS: float | None = None   # None = wait until mined
    HISTORY_FROM_BLOCK: int = 0
    EVENT_POLL_INTERVAL_SECONDS: float = 4.0

    # Redis
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_SSL: bool = False

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    ABANDONED_CHECK_INTERVAL_SECONDS: int = 60
    ABANDONED_TRANSFER_TTL_HOURS: int = 72

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
