# stocksync/services/mapping_service.py
import logging
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from stocksync.core.enums import MappingStatus, PlatformName
from stocksync.core.exceptions import MappingNotFound, SyncEngineError, ValidationError
from stocksync.core.utils import normalize_sku
from stocksync.integrations.base import PlatformInterface
from stocksync.schemas import (
    InventoryPolicy,
    MappingCreate,
    MappingUpdate,
    PlatformListing,
    PricingPolicy,
    ProductMapping,
)
from stocksync.services.store.base import SyncStore

logger = logging.getLogger(__name__)


class MappingService:
    """
    Create, edit, soft-delete and auto-discover product mappings.

    A mapping only becomes ``active`` once it references both platforms;
    until then it stays ``pending`` whatever status was asked for.
    """

    def __init__(
        self,
        store: SyncStore,
        platforms: Mapping[PlatformName, PlatformInterface],
        default_pricing: Optional[PricingPolicy] = None,
    ):
        self.store = store
        self.platforms = dict(platforms)
        self.default_pricing = default_pricing or PricingPolicy()

    @staticmethod
    def _resolve_status(mapping: ProductMapping, requested: Optional[MappingStatus]) -> MappingStatus:
        requested = requested or MappingStatus.ACTIVE
        if requested == MappingStatus.ACTIVE and not mapping.has_all_references():
            return MappingStatus.PENDING
        return requested

    async def create_mapping(self, data: MappingCreate) -> ProductMapping:
        try:
            sku = normalize_sku(data.sku)
        except ValueError as e:
            raise ValidationError(str(e), sku=str(data.sku)) from e

        existing = await self.store.get_mapping(sku, include_deleted=True)
        if existing is not None and existing.deleted_at is None:
            raise ValidationError(f"Mapping for SKU {sku} already exists", sku=sku)

        try:
            mapping = ProductMapping(
                sku=sku,
                **data.model_dump(exclude={"sku", "status", "pricing", "inventory"}),
                pricing=data.pricing or self.default_pricing.model_copy(),
                inventory=data.inventory or InventoryPolicy(),
            )
        except PydanticValidationError as e:
            raise ValidationError(str(e), sku=sku) from e

        mapping.status = self._resolve_status(mapping, data.status)
        if existing is not None:
            # Re-creating a soft-deleted SKU reuses its row so history stays attached
            mapping.id = existing.id
            mapping.created_at = existing.created_at
        saved = await self.store.upsert_mapping(mapping)
        logger.info(f"Created mapping {saved.sku} (status={saved.status.value})")
        return saved

    async def get_mapping(self, sku: str) -> ProductMapping:
        try:
            sku = normalize_sku(sku)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        mapping = await self.store.get_mapping(sku)
        if mapping is None:
            raise MappingNotFound(f"No product mapping for SKU {sku}", sku=sku)
        return mapping

    async def update_mapping(self, sku: str, data: MappingUpdate) -> ProductMapping:
        mapping = await self.get_mapping(sku)
        changes = data.model_dump(exclude_unset=True)
        if "sku" in changes:
            raise ValidationError("SKU cannot be changed", sku=mapping.sku)

        requested_status = changes.pop("status", None)
        for key, value in changes.items():
            if key == "pricing" and value is not None:
                value = PricingPolicy.model_validate(value)
            elif key == "inventory" and value is not None:
                value = InventoryPolicy.model_validate(value)
            setattr(mapping, key, value)

        if requested_status is None and mapping.status == MappingStatus.PENDING:
            requested_status = MappingStatus.ACTIVE
        mapping.status = self._resolve_status(mapping, requested_status or mapping.status)
        saved = await self.store.upsert_mapping(mapping)
        logger.info(f"Updated mapping {saved.sku}: {sorted(changes)}")
        return saved

    async def soft_delete(self, sku: str) -> ProductMapping:
        mapping = await self.store.soft_delete_mapping(normalize_sku(sku))
        if mapping is None:
            raise MappingNotFound(f"No product mapping for SKU {sku}", sku=sku)
        logger.info(f"Soft-deleted mapping {mapping.sku}")
        return mapping

    async def auto_discover(self, skus: Iterable[str]) -> Dict[str, List]:
        """
        Search both platforms for each SKU and create a mapping where both
        return an exact match. Existing mappings are left alone.
        """
        report: Dict[str, List] = {"created": [], "existing": [], "unmatched": [], "errors": []}
        for raw in skus:
            try:
                sku = normalize_sku(raw)
            except ValueError as e:
                report["errors"].append({"sku": str(raw), "error": str(e)})
                continue

            if await self.store.get_mapping(sku) is not None:
                report["existing"].append(sku)
                continue

            listings: Dict[PlatformName, Optional[PlatformListing]] = {}
            try:
                for platform in PlatformName:
                    adapter = self.platforms.get(platform)
                    listings[platform] = await adapter.find_by_sku(sku) if adapter else None
            except SyncEngineError as e:
                logger.error(f"Auto-discovery search failed for {sku}: {e}")
                report["errors"].append({"sku": sku, "error": str(e), "code": e.code})
                continue

            naver = listings.get(PlatformName.NAVER)
            shopify = listings.get(PlatformName.SHOPIFY)
            if not naver or not shopify:
                report["unmatched"].append({
                    "sku": sku,
                    "naver": naver is not None,
                    "shopify": shopify is not None,
                })
                continue

            pricing = self.default_pricing.model_copy(update={
                "naver_price": naver.price,
                "shopify_price": shopify.price,
            })
            mapping = await self.create_mapping(MappingCreate(
                sku=sku,
                naver_product_id=naver.product_id,
                naver_channel_product_id=naver.channel_product_id,
                shopify_product_id=shopify.product_id,
                shopify_variant_id=shopify.variant_id,
                shopify_inventory_item_id=shopify.inventory_item_id,
                product_name=naver.title or shopify.title,
                pricing=pricing,
            ))
            report["created"].append(mapping.sku)

        logger.info(
            f"Auto-discovery: {len(report['created'])} created, {len(report['existing'])} existing, "
            f"{len(report['unmatched'])} unmatched, {len(report['errors'])} errors"
        )
        return report
