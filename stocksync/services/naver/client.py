import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from stocksync.core.config import Settings
from stocksync.services.http_errors import send
from stocksync.services.naver.auth import NaverCredentialCache
from stocksync.services.rate_limiter import TokenBucketRateLimiter
from stocksync.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

PLATFORM = "NAVER"


def format_naver_datetime(value: datetime) -> str:
    """Naver expects ISO-8601 with milliseconds and an explicit offset."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat(timespec="milliseconds")


class NaverCommerceClient:
    """
    Async client for the Naver Commerce (SmartStore) API.

    Every request goes through three layers, outermost first:
        1. credential refresh: a 401 drops the token and retries once
        2. RetryPolicy: transient failures retried with backoff
        3. RateLimiter.consume, then the HTTP call, then status classification

    Documentation: https://apicenter.commerce.naver.com/
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        credentials: NaverCredentialCache,
        rate_limiter: TokenBucketRateLimiter,
        retry_policy: RetryPolicy,
        base_url: str = "https://api.commerce.naver.com/external",
        timeout: float = 30.0,
    ):
        self.http_client = http_client
        self.credentials = credentials
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, http_client, credentials, rate_limiter, retry_policy):
        return cls(
            http_client=http_client,
            credentials=credentials,
            rate_limiter=rate_limiter,
            retry_policy=retry_policy,
            base_url=settings.NAVER_API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        async def attempt(headers):
            await self.rate_limiter.consume(PLATFORM)
            response = await send(
                self.http_client,
                PLATFORM,
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
            if response.status_code == 204 or not response.content:
                return {}
            return response.json()

        async def with_retry(headers):
            return await self.retry_policy.run(attempt, headers)

        return await self.credentials.call_with_refresh(with_retry)

    # --- Products ---

    async def get_origin_product(self, origin_product_no: str) -> Dict[str, Any]:
        """Full origin product document, as required by the update endpoint."""
        return await self._make_request("GET", f"/v2/products/origin-products/{origin_product_no}")

    async def update_origin_product(self, origin_product_no: str, product: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Updating Naver origin product {origin_product_no}")
        return await self._make_request("PUT", f"/v2/products/origin-products/{origin_product_no}", json=product)

    async def search_products(
        self,
        seller_management_code: Optional[str] = None,
        page: int = 1,
        size: int = 50,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"page": page, "size": size, "orderType": "REG_DATE"}
        if seller_management_code:
            body["searchKeywordType"] = "SELLER_CODE"
            body["sellerManagementCode"] = seller_management_code
        return await self._make_request("POST", "/v1/products/search", json=body)

    # --- Orders ---

    async def list_changed_orders(
        self,
        changed_from: datetime,
        changed_to: datetime,
        status: Optional[str] = "PAYED",
        page: int = 1,
        size: int = 100,
    ) -> List[Dict[str, Any]]:
        """One page of orders whose status changed inside ``[changed_from, changed_to)``."""
        params = {
            "lastChangedFrom": format_naver_datetime(changed_from),
            "lastChangedTo": format_naver_datetime(changed_to),
            "page": page,
            "size": size,
        }
        if status:
            params["lastChangedType"] = status

        data = await self._make_request("GET", "/v1/pay-order/seller/orders", params=params)
        # The list sits at the top level or under "data" depending on API version
        body = data.get("data", data) if isinstance(data, dict) else {}
        return body.get("lastChangeStatuses") or []

    async def acknowledge_orders(self, product_order_ids: List[str]) -> None:
        for product_order_id in product_order_ids:
            await self._make_request(
                "POST", f"/v1/pay-order/seller/product-orders/{product_order_id}/acknowledge"
            )
            logger.info(f"Naver order acknowledged: {product_order_id}")
