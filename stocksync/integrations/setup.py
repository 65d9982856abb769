"""
Builds the sync engine object graph once per process.

Everything is constructed here and handed down explicitly: one HTTP client,
one credential cache, one rate limiter per platform, one lock manager. The
FastAPI app stores the result on ``app.state.engine``.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from stocksync.core.config import Settings, get_settings
from stocksync.core.enums import PlatformName, RoundingStrategy
from stocksync.integrations.base import PlatformInterface
from stocksync.integrations.platforms.naver import NaverPlatform
from stocksync.integrations.platforms.shopify import ShopifyPlatform
from stocksync.schemas import PricingPolicy
from stocksync.services.events import EventBus
from stocksync.services.exchange_rate import ExchangeRateService
from stocksync.services.inventory_reconciler import InventoryReconciler
from stocksync.services.inventory_sync import InventorySynchronizer
from stocksync.services.locks import SkuLockManager
from stocksync.services.mapping_service import MappingService
from stocksync.services.naver.auth import NaverCredentialCache
from stocksync.services.naver.client import NaverCommerceClient
from stocksync.services.order_ingestion import OrderIngestionPipeline
from stocksync.services.price_sync import PriceReconciler
from stocksync.services.rate_limiter import TokenBucketRateLimiter
from stocksync.services.retry import RetryPolicy
from stocksync.services.shopify.client import ShopifyClient
from stocksync.services.store.base import SyncStore
from stocksync.services.store.memory import InMemorySyncStore
from stocksync.services.sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)


@dataclass
class SyncEngine:
    settings: Settings
    store: SyncStore
    http_client: httpx.AsyncClient
    event_bus: EventBus
    locks: SkuLockManager
    platforms: Dict[PlatformName, PlatformInterface]
    reconciler: InventoryReconciler
    synchronizer: InventorySynchronizer
    price_reconciler: PriceReconciler
    exchange_rates: ExchangeRateService
    mappings: MappingService
    scheduler: SyncScheduler
    credentials: Optional[NaverCredentialCache] = None
    naver_client: Optional[NaverCommerceClient] = None
    shopify_client: Optional[ShopifyClient] = None
    ingestion: Optional[OrderIngestionPipeline] = None
    rate_limiters: Dict[PlatformName, TokenBucketRateLimiter] = field(default_factory=dict)
    owns_http_client: bool = True

    async def aclose(self):
        await self.scheduler.shutdown()
        await self.event_bus.drain()
        if self.owns_http_client:
            await self.http_client.aclose()


def default_pricing_policy(settings: Settings) -> PricingPolicy:
    return PricingPolicy(
        margin_percent=settings.DEFAULT_PRICE_MARGIN_PERCENT,
        rounding=RoundingStrategy(settings.DEFAULT_PRICE_ROUNDING),
    )


def build_sync_engine(
    settings: Optional[Settings] = None,
    store: Optional[SyncStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    platforms: Optional[Dict[PlatformName, PlatformInterface]] = None,
) -> SyncEngine:
    """
    Wire the engine. ``platforms`` overrides the HTTP-backed adapters, which
    is how tests plug in in-memory platforms.
    """
    settings = settings or get_settings()
    store = store or InMemorySyncStore()
    owns_http_client = http_client is None
    http_client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    event_bus = EventBus()
    locks = SkuLockManager()
    retry_policy = RetryPolicy.from_settings(settings)

    rate_limiters = {
        PlatformName.NAVER: TokenBucketRateLimiter(
            points=settings.NAVER_RATE_LIMIT_POINTS,
            duration=settings.NAVER_RATE_LIMIT_DURATION,
            wait_interval=settings.RATE_LIMIT_WAIT_SECONDS,
        ),
        PlatformName.SHOPIFY: TokenBucketRateLimiter(
            points=settings.SHOPIFY_RATE_LIMIT_POINTS,
            duration=settings.SHOPIFY_RATE_LIMIT_DURATION,
            wait_interval=settings.RATE_LIMIT_WAIT_SECONDS,
        ),
    }

    credentials = None
    naver_client = None
    shopify_client = None
    adapters: Dict[PlatformName, PlatformInterface] = {}

    if settings.naver_configured:
        credentials = NaverCredentialCache(
            client_id=settings.NAVER_CLIENT_ID,
            client_secret=settings.NAVER_CLIENT_SECRET,
            http_client=http_client,
            base_url=settings.NAVER_API_BASE_URL,
            safety_margin=settings.NAVER_TOKEN_SAFETY_MARGIN_SECONDS,
            retry_policy=retry_policy,
            timeout=settings.TOKEN_TIMEOUT_SECONDS,
        )
        naver_client = NaverCommerceClient.from_settings(
            settings, http_client, credentials, rate_limiters[PlatformName.NAVER], retry_policy
        )
        adapters[PlatformName.NAVER] = NaverPlatform(naver_client)
        logger.info("Registered Naver Platform Integration")
    else:
        logger.warning("Naver credentials not configured; Naver integration disabled")

    if settings.shopify_configured:
        try:
            shopify_client = ShopifyClient.from_settings(
                settings, http_client, rate_limiters[PlatformName.SHOPIFY], retry_policy
            )
            adapters[PlatformName.SHOPIFY] = ShopifyPlatform(shopify_client)
            logger.info("Registered Shopify Platform Integration")
        except ValueError as e:
            logger.error(f"Failed to initialize Shopify Platform: {e}")
    else:
        logger.warning("Shopify credentials not configured; Shopify integration disabled")

    if platforms is not None:
        adapters = dict(platforms)

    exchange_rates = ExchangeRateService.from_settings(settings, store, http_client, retry_policy)
    reconciler = InventoryReconciler(store, adapters, locks=locks, event_bus=event_bus)
    synchronizer = InventorySynchronizer(store, adapters, reconciler, locks=locks)
    price_reconciler = PriceReconciler(store, adapters, exchange_rates, locks=locks)
    mappings = MappingService(store, adapters, default_pricing=default_pricing_policy(settings))

    ingestion = None
    if naver_client is not None:
        ingestion = OrderIngestionPipeline.from_settings(settings, naver_client, reconciler, store)

    scheduler = SyncScheduler(
        store=store,
        reconciler=reconciler,
        synchronizer=synchronizer,
        price_reconciler=price_reconciler,
        ingestion=ingestion,
        exchange_rates=exchange_rates,
        credentials=credentials,
        event_bus=event_bus,
        settings=settings,
    )

    return SyncEngine(
        settings=settings,
        store=store,
        http_client=http_client,
        event_bus=event_bus,
        locks=locks,
        platforms=adapters,
        reconciler=reconciler,
        synchronizer=synchronizer,
        price_reconciler=price_reconciler,
        exchange_rates=exchange_rates,
        mappings=mappings,
        scheduler=scheduler,
        credentials=credentials,
        naver_client=naver_client,
        shopify_client=shopify_client,
        ingestion=ingestion,
        rate_limiters=rate_limiters,
        owns_http_client=owns_http_client,
    )
