# stocksync/services/inventory_sync.py
"""
Brings one SKU's stock level into agreement across Naver and Shopify.

One-way (default): the mapping's priority platform is the source of truth
and the other side is set to ``source - target.safety_stock`` (floored at 0).

Bidirectional: the higher of the two quantities wins and only the lower
side is raised.
"""
import logging
from typing import Mapping, Optional

from stocksync.core.enums import Actor, AdjustType, ItemStatus, PlatformName, PlatformScope
from stocksync.core.exceptions import MappingNotFound, SyncEngineError
from stocksync.core.utils import normalize_sku
from stocksync.integrations.base import PlatformInterface
from stocksync.schemas import ItemResult, ProductMapping
from stocksync.services.inventory_reconciler import InventoryReconciler
from stocksync.services.locks import SkuLockManager
from stocksync.services.store.base import SyncStore

logger = logging.getLogger(__name__)


def _other(platform: PlatformName) -> PlatformName:
    return PlatformName.SHOPIFY if platform == PlatformName.NAVER else PlatformName.NAVER


def plan_inventory_sync(mapping: ProductMapping, quantities: Mapping[PlatformName, int]):
    """
    Decide which platform to write and the quantity to write.

    Returns (target_platform, desired_quantity, source_platform), or None when
    nothing needs to change.
    """
    policy = mapping.inventory
    naver_qty = quantities[PlatformName.NAVER]
    shopify_qty = quantities[PlatformName.SHOPIFY]

    if policy.bidirectional:
        if naver_qty == shopify_qty:
            return None
        source = PlatformName.NAVER if naver_qty > shopify_qty else PlatformName.SHOPIFY
        target = _other(source)
        return target, quantities[source], source

    source = policy.priority_platform
    target = _other(source)
    desired = max(0, quantities[source] - policy.for_platform(target).safety_stock)
    if desired == quantities[target]:
        return None
    return target, desired, source


class InventorySynchronizer:

    def __init__(
        self,
        store: SyncStore,
        platforms: Mapping[PlatformName, PlatformInterface],
        reconciler: InventoryReconciler,
        locks: Optional[SkuLockManager] = None,
    ):
        self.store = store
        self.platforms = dict(platforms)
        self.reconciler = reconciler
        self.locks = locks or reconciler.locks

    async def sync_sku(self, sku: str) -> ItemResult:
        sku = normalize_sku(sku)
        mapping = await self.store.get_mapping(sku)
        if mapping is None:
            raise MappingNotFound(f"No product mapping for SKU {sku}", sku=sku)

        if not mapping.inventory.sync_enabled:
            logger.debug(f"Inventory sync disabled for {sku}")
            return ItemResult(sku=sku, status=ItemStatus.SKIPPED, message="Inventory sync disabled")

        missing = [p.value for p in PlatformName if not mapping.has_reference(p) or p not in self.platforms]
        if missing:
            return ItemResult(
                sku=sku,
                status=ItemStatus.SKIPPED,
                message=f"Missing platform reference: {', '.join(missing)}",
                error_code=MappingNotFound.code,
            )

        # Separate from the reconciler's (sku, platform) locks, which adjust() takes below
        async with self.locks.lock(sku, "inventory-sync"):
            try:
                quantities = {
                    platform: await self.platforms[platform].get_stock(mapping)
                    for platform in PlatformName
                }
            except SyncEngineError as e:
                logger.error(f"Could not read stock for {sku}: {e}")
                return ItemResult(sku=sku, status=ItemStatus.FAILED, message=str(e), error_code=e.code)

            plan = plan_inventory_sync(mapping, quantities)
            details = {p.value: q for p, q in quantities.items()}
            if plan is None:
                logger.debug(f"{sku} already in sync: {details}")
                return ItemResult(sku=sku, status=ItemStatus.SKIPPED, message="Already in sync", details=details)

            target, desired, source = plan
            result = await self.reconciler.adjust(
                sku,
                PlatformScope(target.value),
                AdjustType.SET,
                desired,
                reason=f"sync from {source.value}",
                actor=Actor.SYSTEM,
            )

        outcome = result.outcomes[target]
        details.update({"source": source.value, "target": target.value, "new_quantity": desired})
        if not outcome.success:
            return ItemResult(
                sku=sku,
                status=ItemStatus.FAILED,
                message=outcome.error,
                error_code=outcome.error_code,
                details=details,
            )
        logger.info(f"Synced {sku}: {target.value} {quantities[target]} -> {desired} (source {source.value})")
        return ItemResult(sku=sku, status=ItemStatus.SUCCESS, details=details)
