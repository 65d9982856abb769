# stocksync/core/config.py

import os
from functools import lru_cache
from typing import List, Optional, Annotated
from pydantic import ConfigDict, BeforeValidator
from pydantic_settings import BaseSettings


def _parse_csv_list(value):
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Naver Commerce API (platform A)
    NAVER_CLIENT_ID: str = ""
    NAVER_CLIENT_SECRET: str = ""
    NAVER_API_BASE_URL: str = "https://api.commerce.naver.com/external"
    NAVER_TOKEN_SAFETY_MARGIN_SECONDS: int = 1800  # cache for expiry - 30min
    NAVER_ACKNOWLEDGE_ORDERS: bool = False

    # Shopify Admin API (platform B)
    SHOPIFY_SHOP_URL: Optional[str] = None
    SHOPIFY_ADMIN_API_ACCESS_TOKEN: Optional[str] = None
    SHOPIFY_API_VERSION: str = "2024-10"
    SHOPIFY_LOCATION_GID: Optional[str] = None

    # Rate limits (token bucket per platform)
    NAVER_RATE_LIMIT_POINTS: int = 2
    NAVER_RATE_LIMIT_DURATION: float = 1.0
    SHOPIFY_RATE_LIMIT_POINTS: int = 2
    SHOPIFY_RATE_LIMIT_DURATION: float = 1.0
    RATE_LIMIT_WAIT_SECONDS: float = 0.5

    # Retry policy
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 5.0
    RETRY_JITTER: float = 0.5

    # HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0
    TOKEN_TIMEOUT_SECONDS: float = 10.0

    # Sync behaviour
    SYNC_MAX_CONCURRENCY: int = 2
    ORDER_PAGE_SIZE: int = 100
    ORDER_PAGE_DELAY_SECONDS: float = 0.5
    ORDER_INGESTION_OVERLAP_MINUTES: int = 10
    ORDER_INGESTION_INTERVAL_MINUTES: int = 30
    ORDER_INGESTION_STATUS: str = "PAYED"

    # Exchange rate
    EXCHANGE_RATE_API_URL: str = "https://api.exchangerate-api.com/v4/latest/KRW"
    EXCHANGE_RATE_BASE: str = "KRW"
    EXCHANGE_RATE_TARGET: str = "USD"
    EXCHANGE_RATE_VALID_HOURS: int = 24
    EXCHANGE_RATE_FALLBACK: Optional[float] = None

    # Pricing defaults (used when a mapping carries no policy of its own)
    DEFAULT_PRICE_MARGIN_PERCENT: float = 15.0
    DEFAULT_PRICE_ROUNDING: str = "round"

    # Scheduler
    SYNC_SCHEDULE_ENABLED: bool = False
    CRON_FULL_SYNC: str = "0 3 * * *"          # nightly
    CRON_ORDER_INGESTION: str = "*/30 * * * *"  # every 30 minutes
    CRON_EXCHANGE_RATE: str = "0 9 * * *"      # daily
    CRON_LOG_RETENTION: str = "0 2 * * 0"      # weekly
    LOG_RETENTION_DAYS: int = 30
    LOG_RETENTION_LEVELS: Annotated[List[str], BeforeValidator(lambda v: _parse_csv_list(v))] = ["debug", "info"]

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def naver_configured(self) -> bool:
        return bool(self.NAVER_CLIENT_ID and self.NAVER_CLIENT_SECRET)

    @property
    def shopify_configured(self) -> bool:
        return bool(self.SHOPIFY_SHOP_URL and self.SHOPIFY_ADMIN_API_ACCESS_TOKEN)


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
