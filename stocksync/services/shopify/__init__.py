from .client import ShopifyClient, ShopifyGraphQLError, to_gid

__all__ = ["ShopifyClient", "ShopifyGraphQLError", "to_gid"]
