# stocksync/services/price_sync.py
import logging
from decimal import Decimal
from typing import Mapping, Optional

from stocksync.core.enums import ItemStatus, PlatformName
from stocksync.core.exceptions import MappingNotFound, SyncEngineError
from stocksync.core.utils import normalize_sku
from stocksync.integrations.base import PlatformInterface
from stocksync.schemas import ItemResult
from stocksync.services.exchange_rate import ExchangeRateService
from stocksync.services.locks import SkuLockManager
from stocksync.services.pricing import calculate_target_price, prices_differ
from stocksync.services.store.base import SyncStore

logger = logging.getLogger(__name__)


class PriceReconciler:
    """Derives the Shopify price from the Naver price and writes it when it moved."""

    def __init__(
        self,
        store: SyncStore,
        platforms: Mapping[PlatformName, PlatformInterface],
        exchange_rates: ExchangeRateService,
        locks: Optional[SkuLockManager] = None,
    ):
        self.store = store
        self.platforms = dict(platforms)
        self.exchange_rates = exchange_rates
        self.locks = locks or SkuLockManager()

    async def sync_price(self, sku: str, rate: Optional[Decimal] = None) -> ItemResult:
        sku = normalize_sku(sku)
        mapping = await self.store.get_mapping(sku)
        if mapping is None:
            raise MappingNotFound(f"No product mapping for SKU {sku}", sku=sku)

        missing = [p.value for p in PlatformName if not mapping.has_reference(p) or p not in self.platforms]
        if missing:
            return ItemResult(
                sku=sku,
                status=ItemStatus.SKIPPED,
                message=f"Missing platform reference: {', '.join(missing)}",
                error_code=MappingNotFound.code,
            )

        naver = self.platforms[PlatformName.NAVER]
        shopify = self.platforms[PlatformName.SHOPIFY]

        async with self.locks.lock(sku, "price-sync"):
            try:
                source_price = await naver.get_price(mapping)
                if not source_price:
                    return ItemResult(sku=sku, status=ItemStatus.SKIPPED, message="No Naver price to derive from")
                rate = rate or await self.exchange_rates.current_rate()
                target_price = calculate_target_price(source_price, rate, mapping.pricing)
                current_price = await shopify.get_price(mapping)

                changed = prices_differ(current_price, target_price)
                if changed:
                    await shopify.set_price(mapping, target_price)
            except SyncEngineError as e:
                logger.error(f"Price sync failed for {sku}: {e}")
                await self._mark(sku, error=str(e))
                return ItemResult(sku=sku, status=ItemStatus.FAILED, message=str(e), error_code=e.code)

            await self._mark(sku, naver_price=source_price, shopify_price=target_price)

        details = {
            "naver_price": str(source_price),
            "rate": str(rate),
            "previous_shopify_price": str(current_price),
            "shopify_price": str(target_price),
        }
        if not changed:
            return ItemResult(sku=sku, status=ItemStatus.SKIPPED, message="Price unchanged", details=details)
        logger.info(f"Updated Shopify price for {sku}: {current_price} -> {target_price}")
        return ItemResult(sku=sku, status=ItemStatus.SUCCESS, details=details)

    async def _mark(self, sku, error=None, naver_price=None, shopify_price=None):
        mapping = await self.store.get_mapping(sku)
        if mapping is None:
            return
        if error:
            mapping.mark_error("price", error)
        else:
            mapping.pricing.naver_price = naver_price
            mapping.pricing.shopify_price = shopify_price
            mapping.mark_synced("price")
        await self.store.upsert_mapping(mapping)
