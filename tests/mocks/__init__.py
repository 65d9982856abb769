from stocksync.schemas import InventoryPolicy, PricingPolicy, ProductMapping


class MockData:
    """Mock data for testing"""
    @staticmethod
    def mapping(sku: str = "ALBUM-001", **overrides) -> ProductMapping:
        data = {
            "sku": sku,
            "status": "active",
            "naver_product_id": "1000001",
            "naver_channel_product_id": "2000001",
            "shopify_product_id": "gid://shopify/Product/3000001",
            "shopify_variant_id": "gid://shopify/ProductVariant/4000001",
            "shopify_inventory_item_id": "gid://shopify/InventoryItem/5000001",
            "product_name": "Test Album",
            "pricing": PricingPolicy(),
            "inventory": InventoryPolicy(),
        }
        data.update(overrides)
        return ProductMapping(**data)

    @staticmethod
    def naver_order(order_id: str, lines, status: str = "PAYED") -> dict:
        """One ``lastChangeStatuses`` entry; ``lines`` is [(line_id, sku, qty), ...]"""
        return {
            "orderId": order_id,
            "orderStatus": status,
            "orderItems": [
                {"productOrderId": line_id, "sellerManagementCode": sku, "quantity": qty}
                for line_id, sku, qty in lines
            ],
        }
