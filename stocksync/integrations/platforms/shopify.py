import logging
from decimal import Decimal
from typing import Optional

from stocksync.core.enums import PlatformName
from stocksync.core.exceptions import MappingNotFound, PlatformAPIError
from stocksync.integrations.base import PlatformInterface
from stocksync.schemas import PlatformListing, ProductMapping
from stocksync.services.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)


class ShopifyPlatform(PlatformInterface):
    name = PlatformName.SHOPIFY

    def __init__(self, client: ShopifyClient):
        self.client = client

    def _missing(self, mapping: ProductMapping, what: str) -> MappingNotFound:
        return MappingNotFound(
            f"No Shopify {what} reference for {mapping.sku}",
            platform=self.name.value,
            sku=mapping.sku,
        )

    async def _inventory_item_id(self, mapping: ProductMapping) -> str:
        if mapping.shopify_inventory_item_id:
            return mapping.shopify_inventory_item_id
        if not mapping.shopify_variant_id:
            raise self._missing(mapping, "inventory item")
        variant = await self.client.get_variant(mapping.shopify_variant_id)
        item_id = ((variant or {}).get("inventoryItem") or {}).get("id")
        if not item_id:
            raise self._missing(mapping, "inventory item")
        return item_id

    async def get_stock(self, mapping):
        item_id = await self._inventory_item_id(mapping)
        return await self.client.get_available_quantity(item_id, mapping.shopify_location_id)

    async def set_stock(self, mapping, quantity):
        item_id = await self._inventory_item_id(mapping)
        await self.client.set_available_quantity(item_id, quantity, mapping.shopify_location_id)

    async def get_price(self, mapping):
        if not mapping.shopify_variant_id:
            raise self._missing(mapping, "variant")
        variant = await self.client.get_variant(mapping.shopify_variant_id)
        if not variant:
            raise PlatformAPIError(
                f"Shopify variant {mapping.shopify_variant_id} not found",
                platform=self.name.value,
                sku=mapping.sku,
                status_code=404,
            )
        return Decimal(str(variant.get("price") or "0"))

    async def set_price(self, mapping, price):
        if not mapping.shopify_variant_id:
            raise self._missing(mapping, "variant")
        product_id = mapping.shopify_product_id
        if not product_id:
            variant = await self.client.get_variant(mapping.shopify_variant_id)
            product_id = ((variant or {}).get("product") or {}).get("id")
            if not product_id:
                raise self._missing(mapping, "product")
        await self.client.update_variant_price(product_id, mapping.shopify_variant_id, price)

    async def find_by_sku(self, sku: str) -> Optional[PlatformListing]:
        variant = await self.client.find_variant_by_sku(sku)
        if not variant:
            return None
        return PlatformListing(
            platform=self.name,
            sku=sku,
            product_id=(variant.get("product") or {}).get("id"),
            variant_id=variant.get("id"),
            inventory_item_id=(variant.get("inventoryItem") or {}).get("id"),
            title=(variant.get("product") or {}).get("title"),
            price=Decimal(str(variant["price"])) if variant.get("price") is not None else None,
            quantity=variant.get("inventoryQuantity"),
        )
