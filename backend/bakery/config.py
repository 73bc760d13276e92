from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:5173"]

    # PesaPal v3 (sandbox by default)
    PESAPAL_BASE_URL: str = "https://cybqa.pesapal.com/pesapalv3"
    PESAPAL_CONSUMER_KEY: str = ""
    PESAPAL_CONSUMER_SECRET: str = ""
    PESAPAL_IPN_ID: str = ""
    PESAPAL_CALLBACK_URL: str = "http://localhost:5173/payment-callback"

    CURRENCY: str = "UGX"
    COUNTRY_CODE: str = "UG"
    TAX_RATE: Decimal = Decimal("0.18")
    MERCHANT_REFERENCE_PREFIX: str = "TINA"

    PENDING_PAYMENT_TTL_SECONDS: int = 3600
    STATUS_POLL_INTERVAL_SECONDS: int = 3
    STATUS_POLL_MAX_ATTEMPTS: int = 10

    LOCKS_DIR: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
