# stocksync/services/exchange_rate.py
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from stocksync.core.config import Settings
from stocksync.core.exceptions import PlatformAPIError, SyncEngineError, ValidationError
from stocksync.core.utils import utcnow
from stocksync.schemas import ExchangeRate
from stocksync.services.http_errors import send
from stocksync.services.retry import RetryPolicy
from stocksync.services.store.base import SyncStore

logger = logging.getLogger(__name__)

SOURCE = "EXCHANGE_RATE_API"


class ExchangeRateService:
    """
    KRW -> USD rate used by price sync.

    Lookup order: a stored rate younger than the validity window, then a
    fresh fetch, then the last stored rate of any age, then the configured
    fallback.
    """

    def __init__(
        self,
        store: SyncStore,
        http_client: httpx.AsyncClient,
        api_url: str,
        base: str = "KRW",
        target: str = "USD",
        valid_hours: int = 24,
        fallback_rate: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 10.0,
    ):
        self.store = store
        self.http_client = http_client
        self.api_url = api_url
        self.base = base
        self.target = target
        self.valid_for = timedelta(hours=valid_hours)
        self.fallback_rate = Decimal(str(fallback_rate)) if fallback_rate else None
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, store, http_client, retry_policy=None):
        return cls(
            store=store,
            http_client=http_client,
            api_url=settings.EXCHANGE_RATE_API_URL,
            base=settings.EXCHANGE_RATE_BASE,
            target=settings.EXCHANGE_RATE_TARGET,
            valid_hours=settings.EXCHANGE_RATE_VALID_HOURS,
            fallback_rate=settings.EXCHANGE_RATE_FALLBACK,
            retry_policy=retry_policy,
        )

    async def _fetch_once(self) -> Decimal:
        response = await send(
            self.http_client,
            SOURCE,
            "GET",
            self.api_url,
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        data = response.json()
        raw = (data.get("rates") or {}).get(self.target, data.get(self.target))
        if raw is None:
            raise PlatformAPIError(f"Exchange rate response has no {self.target} rate", platform=SOURCE)
        try:
            rate = Decimal(str(raw))
        except InvalidOperation as e:
            raise PlatformAPIError(f"Invalid exchange rate value: {raw}", platform=SOURCE) from e
        if rate <= 0:
            raise PlatformAPIError(f"Non-positive exchange rate: {raw}", platform=SOURCE)
        return rate

    async def refresh(self) -> ExchangeRate:
        """Fetch and store a new rate. Raises on failure."""
        rate = await self.retry_policy.run(self._fetch_once)
        stored = await self.store.save_exchange_rate(ExchangeRate(
            base_currency=self.base,
            target_currency=self.target,
            rate=rate,
            source="api",
        ))
        logger.info(f"Exchange rate refreshed: {self.base}/{self.target} = {rate}")
        return stored

    async def current_rate(self) -> Decimal:
        latest = await self.store.latest_exchange_rate(self.base, self.target)
        if latest and utcnow() - latest.fetched_at < self.valid_for:
            return latest.rate

        try:
            return (await self.refresh()).rate
        except SyncEngineError as e:
            logger.error(f"Failed to refresh exchange rate: {e}")

        if latest:
            logger.warning(f"Using stale exchange rate from {latest.fetched_at}: {latest.rate}")
            return latest.rate
        if self.fallback_rate:
            logger.warning(f"Using configured fallback exchange rate: {self.fallback_rate}")
            return self.fallback_rate
        raise PlatformAPIError("No exchange rate available", platform=SOURCE)

    async def set_manual_rate(self, rate) -> ExchangeRate:
        rate = Decimal(str(rate))
        if rate <= 0:
            raise ValidationError("Exchange rate must be positive")
        stored = await self.store.save_exchange_rate(ExchangeRate(
            base_currency=self.base,
            target_currency=self.target,
            rate=rate,
            source="manual",
        ))
        logger.info(f"Manual exchange rate set: {self.base}/{self.target} = {rate}")
        return stored
