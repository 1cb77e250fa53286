from typing import List, Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):

    DATABASE_URL : str = "sqlite+aiosqlite:///./storefront.db"
    DB_ECHO : bool = False
    JWT_SECRET : str = "change-me"
    JWT_ALGO : str = "HS256"
    PAYMENT_GATEWAY_URL : str = "https://api.stripe.com/v1"
    PAYMENT_SECRET_KEY : str = ""
    PAYMENT_WEBHOOK_SECRET : str = ""
    PAYMENT_WEBHOOK_TOLERANCE_SECONDS : int = 300
    PAYMENT_TIMEOUT_SECONDS : float = 10.0
    PAYMENT_MAX_RETRIES : int = 3
    SITE_URL : str = "http://localhost:5173"
    DEFAULT_CURRENCY : str = "usd"
    CHECKOUT_SUCCESS_PATH : str = "/checkout/success"
    CHECKOUT_CANCEL_PATH : str = "/checkout/cancel"
    RESERVATION_TTL_MINUTES : int = 15
    RESERVATION_SWEEP_INTERVAL_SECONDS : float = 60.0
    RESERVATION_SWEEP_BATCH : int = 100
    ENABLE_RESERVATION_SWEEPER : bool = True
    SHIPPING_ALLOWED_COUNTRIES : List[str] = []
    REDIS_URL : Optional[str] = None
    CHECKOUT_RATE_LIMIT : int = 3
    CHECKOUT_RATE_WINDOW_SECONDS : int = 60
    GATEWAY_FAILURE_THRESHOLD : int = 5
    GATEWAY_RECOVERY_TIMEOUT_SECONDS : float = 30.0
    MAX_REQUEST_BYTES : int = 1024 * 1024

    class Config:
        env_file = ".env"
        extra="ignore"

config_settings = Settings()
