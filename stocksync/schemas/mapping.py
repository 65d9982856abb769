"""
Product mapping schemas.

A mapping joins one merchant SKU to its Naver origin/channel product and its
Shopify product/variant/inventory item. The pricing, inventory and sync-state
blocks are stored as JSON on the row and validated here.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from stocksync.core.enums import MappingStatus, PlatformName, RoundingStrategy, SyncStatus
from stocksync.core.utils import ensure_aware, normalize_sku, utcnow
from stocksync.schemas.base import BaseSchema, TimestampedSchema


class PlatformStock(BaseModel):
    available: int = Field(0, ge=0)
    reserved: int = Field(0, ge=0)
    safety_stock: int = Field(0, ge=0)


class InventoryPolicy(BaseModel):
    naver: PlatformStock = Field(default_factory=PlatformStock)
    shopify: PlatformStock = Field(default_factory=PlatformStock)
    sync_enabled: bool = True
    bidirectional: bool = False
    priority_platform: PlatformName = PlatformName.NAVER

    def for_platform(self, platform: PlatformName) -> PlatformStock:
        return self.naver if platform == PlatformName.NAVER else self.shopify


class PricingPolicy(BaseModel):
    naver_price: Optional[Decimal] = None
    shopify_price: Optional[Decimal] = None
    naver_currency: str = "KRW"
    shopify_currency: str = "USD"
    margin_percent: Decimal = Decimal("15")
    rounding: RoundingStrategy = RoundingStrategy.ROUND
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None

    @field_validator("margin_percent")
    @classmethod
    def margin_not_below_minus_100(cls, v):
        if v <= Decimal("-100"):
            raise ValueError("margin_percent must be greater than -100")
        return v


class SyncState(BaseModel):
    inventory: SyncStatus = SyncStatus.PENDING
    price: SyncStatus = SyncStatus.PENDING
    product: SyncStatus = SyncStatus.PENDING
    last_synced_at: Optional[datetime] = None
    last_error: Optional[str] = None


class ProductMapping(TimestampedSchema):
    id: Optional[int] = None
    sku: str

    naver_product_id: Optional[str] = None
    naver_channel_product_id: Optional[str] = None
    shopify_product_id: Optional[str] = None
    shopify_variant_id: Optional[str] = None
    shopify_inventory_item_id: Optional[str] = None
    shopify_location_id: Optional[str] = None

    product_name: Optional[str] = None
    status: MappingStatus = MappingStatus.PENDING

    pricing: PricingPolicy = Field(default_factory=PricingPolicy)
    inventory: InventoryPolicy = Field(default_factory=InventoryPolicy)
    sync_state: SyncState = Field(default_factory=SyncState)

    deleted_at: Optional[datetime] = None

    @field_validator("sku", mode="before")
    @classmethod
    def _normalize_sku(cls, v):
        return normalize_sku(v)

    @field_validator("deleted_at", mode="after")
    @classmethod
    def _deleted_aware(cls, v):
        return ensure_aware(v)

    @property
    def is_active(self) -> bool:
        return self.status == MappingStatus.ACTIVE and self.deleted_at is None

    def has_reference(self, platform: PlatformName) -> bool:
        if platform == PlatformName.NAVER:
            return bool(self.naver_product_id or self.naver_channel_product_id)
        return bool(self.shopify_variant_id or self.shopify_inventory_item_id)

    def has_all_references(self) -> bool:
        return all(self.has_reference(p) for p in PlatformName)

    def stock_for(self, platform: PlatformName) -> PlatformStock:
        return self.inventory.for_platform(platform)

    def mark_synced(self, aspect: str, when: Optional[datetime] = None) -> None:
        setattr(self.sync_state, aspect, SyncStatus.SYNCED)
        self.sync_state.last_synced_at = when or utcnow()
        self.sync_state.last_error = None

    def mark_error(self, aspect: str, error: str) -> None:
        setattr(self.sync_state, aspect, SyncStatus.ERROR)
        self.sync_state.last_error = error

    def mark_skipped(self, aspect: str) -> None:
        setattr(self.sync_state, aspect, SyncStatus.SKIPPED)


class MappingCreate(BaseSchema):
    """Payload for manually creating a mapping"""
    sku: str
    status: Optional[MappingStatus] = None
    naver_product_id: Optional[str] = None
    naver_channel_product_id: Optional[str] = None
    shopify_product_id: Optional[str] = None
    shopify_variant_id: Optional[str] = None
    shopify_inventory_item_id: Optional[str] = None
    shopify_location_id: Optional[str] = None
    product_name: Optional[str] = None
    pricing: Optional[PricingPolicy] = None
    inventory: Optional[InventoryPolicy] = None


class MappingUpdate(BaseSchema):
    """Partial update; the SKU itself is immutable."""
    naver_product_id: Optional[str] = None
    naver_channel_product_id: Optional[str] = None
    shopify_product_id: Optional[str] = None
    shopify_variant_id: Optional[str] = None
    shopify_inventory_item_id: Optional[str] = None
    shopify_location_id: Optional[str] = None
    product_name: Optional[str] = None
    status: Optional[MappingStatus] = None
    pricing: Optional[PricingPolicy] = None
    inventory: Optional[InventoryPolicy] = None


class PlatformListing(BaseModel):
    """A product found on one platform during discovery."""
    platform: PlatformName
    sku: str
    product_id: Optional[str] = None
    channel_product_id: Optional[str] = None
    variant_id: Optional[str] = None
    inventory_item_id: Optional[str] = None
    title: Optional[str] = None
    price: Optional[Decimal] = None
    quantity: Optional[int] = None
