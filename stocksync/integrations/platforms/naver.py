import logging
from decimal import Decimal
from typing import Optional

from stocksync.core.enums import PlatformName
from stocksync.core.exceptions import MappingNotFound, PlatformAPIError
from stocksync.integrations.base import PlatformInterface
from stocksync.schemas import PlatformListing, ProductMapping
from stocksync.services.naver.client import NaverCommerceClient

logger = logging.getLogger(__name__)


class NaverPlatform(PlatformInterface):
    """
    Stock and price live on the origin product. Naver has no partial update
    for them, so writes fetch the full document, change one field and PUT it back.
    """
    name = PlatformName.NAVER

    def __init__(self, client: NaverCommerceClient):
        self.client = client

    def _origin_no(self, mapping: ProductMapping) -> str:
        if not mapping.naver_product_id:
            raise MappingNotFound(
                f"No Naver product reference for {mapping.sku}",
                platform=self.name.value,
                sku=mapping.sku,
            )
        return mapping.naver_product_id

    async def _origin(self, mapping: ProductMapping) -> dict:
        product = await self.client.get_origin_product(self._origin_no(mapping))
        if "originProduct" not in product:
            raise PlatformAPIError(
                f"Naver product {mapping.naver_product_id} response has no originProduct",
                platform=self.name.value,
                sku=mapping.sku,
            )
        return product

    async def get_stock(self, mapping):
        product = await self._origin(mapping)
        return int(product["originProduct"].get("stockQuantity") or 0)

    async def set_stock(self, mapping, quantity):
        product = await self._origin(mapping)
        product["originProduct"]["stockQuantity"] = int(quantity)
        await self.client.update_origin_product(self._origin_no(mapping), product)

    async def get_price(self, mapping):
        product = await self._origin(mapping)
        return Decimal(str(product["originProduct"].get("salePrice") or 0))

    async def set_price(self, mapping, price):
        product = await self._origin(mapping)
        # KRW has no minor unit
        product["originProduct"]["salePrice"] = int(price)
        await self.client.update_origin_product(self._origin_no(mapping), product)

    async def find_by_sku(self, sku: str) -> Optional[PlatformListing]:
        data = await self.client.search_products(seller_management_code=sku)
        for content in data.get("contents", []):
            for channel in content.get("channelProducts", []):
                code = (channel.get("sellerManagementCode") or "").strip().upper()
                if code != sku.strip().upper():
                    continue
                return PlatformListing(
                    platform=self.name,
                    sku=sku,
                    product_id=str(content.get("originProductNo")),
                    channel_product_id=str(channel.get("channelProductNo")) if channel.get("channelProductNo") else None,
                    title=channel.get("name"),
                    price=Decimal(str(channel["salePrice"])) if channel.get("salePrice") is not None else None,
                    quantity=channel.get("stockQuantity"),
                )
        logger.debug(f"No Naver product with seller code {sku}")
        return None
