# stocksync.services.shopify.client

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from stocksync.core.config import Settings
from stocksync.core.exceptions import PlatformAPIError, RateLimitExceeded, ValidationError
from stocksync.services.http_errors import send
from stocksync.services.rate_limiter import TokenBucketRateLimiter
from stocksync.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

PLATFORM = "SHOPIFY"


def to_gid(resource: str, value: Optional[str]) -> Optional[str]:
    """Accept a bare numeric id or a full ``gid://shopify/...`` id."""
    if value is None:
        return None
    value = str(value)
    if value.startswith("gid://"):
        return value
    return f"gid://shopify/{resource}/{value}"


class ShopifyGraphQLError(PlatformAPIError):
    """GraphQL ``errors`` or mutation ``userErrors``."""

    def __init__(self, errors, **kwargs):
        self.errors = errors
        message = "GraphQL query failed with errors:"
        for error in errors:
            msg = error.get('message', 'Unknown error')
            path = error.get('path') or error.get('field') or []
            message += f" [{msg}, path={path}]"
        super().__init__(message, platform=PLATFORM, **kwargs)


class ShopifyClient:
    """
    Async Shopify Admin GraphQL client limited to what the sync engine needs:
    inventory level read/write, variant lookup and variant price update.

    Requests pass through the platform RateLimiter and RetryPolicy. A
    ``THROTTLED`` GraphQL error is surfaced as RateLimitExceeded so the retry
    policy backs off.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        shop_url: str,
        access_token: str,
        rate_limiter: TokenBucketRateLimiter,
        retry_policy: RetryPolicy,
        api_version: str = "2024-10",
        default_location_id: Optional[str] = None,
        timeout: float = 30.0,
    ):
        if not shop_url or not access_token:
            raise ValueError("SHOPIFY_SHOP_URL and SHOPIFY_ADMIN_API_ACCESS_TOKEN must be set")

        domain = shop_url.replace("https://", "").replace("http://", "").rstrip("/")
        self.graphql_url = f"https://{domain}/admin/api/{api_version}/graphql.json"
        self.http_client = http_client
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy
        self.default_location_id = default_location_id
        self.timeout = timeout

        # Updated from the cost extension after each call
        self.currently_available_points: Optional[float] = None
        self.max_available_points: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings, http_client, rate_limiter, retry_policy):
        return cls(
            http_client=http_client,
            shop_url=settings.SHOPIFY_SHOP_URL,
            access_token=settings.SHOPIFY_ADMIN_API_ACCESS_TOKEN,
            rate_limiter=rate_limiter,
            retry_policy=retry_policy,
            api_version=settings.SHOPIFY_API_VERSION,
            default_location_id=settings.SHOPIFY_LOCATION_GID,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def _update_throttle_status(self, extensions):
        throttle = (extensions or {}).get("cost", {}).get("throttleStatus")
        if throttle:
            self.max_available_points = float(throttle["maximumAvailable"])
            self.currently_available_points = float(throttle["currentlyAvailable"])

    async def _post_once(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        await self.rate_limiter.consume(PLATFORM)
        response = await send(
            self.http_client,
            PLATFORM,
            "POST",
            self.graphql_url,
            headers=self.headers,
            json=payload,
            timeout=self.timeout,
        )
        response_data = response.json()
        self._update_throttle_status(response_data.get("extensions"))

        errors = response_data.get("errors")
        if errors:
            if any((e.get("extensions") or {}).get("code") == "THROTTLED" for e in errors):
                raise RateLimitExceeded("Shopify GraphQL request was throttled", platform=PLATFORM)
            raise ShopifyGraphQLError(errors)
        return response_data.get("data") or {}

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        return await self.retry_policy.run(self._post_once, payload)

    @staticmethod
    def _raise_user_errors(payload: Optional[Dict[str, Any]], operation: str):
        if payload is None:
            raise PlatformAPIError(f"Shopify {operation} returned no payload", platform=PLATFORM)
        user_errors = payload.get("userErrors") or []
        if user_errors:
            logger.error(f"Shopify {operation} userErrors: {user_errors}")
            raise ShopifyGraphQLError(user_errors)

    def _location(self, location_id: Optional[str]) -> str:
        location = to_gid("Location", location_id or self.default_location_id)
        if not location:
            raise ValidationError("No Shopify location configured for inventory operations", platform=PLATFORM)
        return location

    # --- Inventory ---

    async def get_available_quantity(self, inventory_item_id: str, location_id: Optional[str] = None) -> int:
        query = """
        query getInventoryLevel($id: ID!, $locationId: ID!) {
          inventoryItem(id: $id) {
            id
            inventoryLevel(locationId: $locationId) {
              quantities(names: ["available"]) { name quantity }
            }
          }
        }
        """
        data = await self.execute(query, {
            "id": to_gid("InventoryItem", inventory_item_id),
            "locationId": self._location(location_id),
        })
        item = data.get("inventoryItem")
        if not item:
            raise PlatformAPIError(f"Shopify inventory item {inventory_item_id} not found", platform=PLATFORM, status_code=404)
        level = item.get("inventoryLevel")
        if not level:
            # Item not stocked at this location yet
            return 0
        for quantity in level.get("quantities", []):
            if quantity.get("name") == "available":
                return int(quantity.get("quantity") or 0)
        return 0

    async def set_available_quantity(
        self,
        inventory_item_id: str,
        quantity: int,
        location_id: Optional[str] = None,
        reason: str = "correction",
    ) -> None:
        mutation = """
        mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
          inventorySetQuantities(input: $input) {
            inventoryAdjustmentGroup { reason }
            userErrors { field message code }
          }
        }
        """
        data = await self.execute(mutation, {
            "input": {
                "name": "available",
                "reason": reason,
                "ignoreCompareQuantity": True,
                "quantities": [{
                    "inventoryItemId": to_gid("InventoryItem", inventory_item_id),
                    "locationId": self._location(location_id),
                    "quantity": int(quantity),
                }],
            }
        })
        self._raise_user_errors(data.get("inventorySetQuantities"), "inventorySetQuantities")
        logger.info(f"Set Shopify inventory item {inventory_item_id} to {quantity}")

    # --- Variants ---

    _VARIANT_FIELDS = """
        id
        sku
        price
        inventoryQuantity
        product { id title }
        inventoryItem { id }
    """

    async def get_variant(self, variant_id: str) -> Optional[Dict[str, Any]]:
        query = f"""
        query getVariant($id: ID!) {{
          productVariant(id: $id) {{ {self._VARIANT_FIELDS} }}
        }}
        """
        data = await self.execute(query, {"id": to_gid("ProductVariant", variant_id)})
        return data.get("productVariant")

    async def find_variant_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        query = f"""
        query findVariant($query: String!) {{
          productVariants(first: 5, query: $query) {{
            edges {{ node {{ {self._VARIANT_FIELDS} }} }}
          }}
        }}
        """
        data = await self.execute(query, {"query": f'sku:"{sku}"'})
        edges = (data.get("productVariants") or {}).get("edges", [])
        for edge in edges:
            node = edge.get("node") or {}
            if (node.get("sku") or "").strip().upper() == sku.strip().upper():
                return node
        return None

    async def update_variant_price(self, product_id: str, variant_id: str, price: Decimal) -> None:
        mutation = """
        mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
          productVariantsBulkUpdate(productId: $productId, variants: $variants) {
            productVariants { id price }
            userErrors { field message }
          }
        }
        """
        data = await self.execute(mutation, {
            "productId": to_gid("Product", product_id),
            "variants": [{"id": to_gid("ProductVariant", variant_id), "price": str(price)}],
        })
        self._raise_user_errors(data.get("productVariantsBulkUpdate"), "productVariantsBulkUpdate")
        logger.info(f"Updated Shopify variant {variant_id} price to {price}")
