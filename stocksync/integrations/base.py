from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from stocksync.core.enums import PlatformName
from stocksync.schemas import PlatformListing, ProductMapping


class PlatformInterface(ABC):
    """
    What the reconciler and synchronizers need from a commerce platform.

    Implementations resolve their own identifiers from the mapping and raise
    MappingNotFound when the mapping carries no reference for them.
    """
    name: PlatformName

    @abstractmethod
    async def get_stock(self, mapping: ProductMapping) -> int:
        """Current sellable quantity on the platform"""
        pass

    @abstractmethod
    async def set_stock(self, mapping: ProductMapping, quantity: int) -> None:
        """Write an absolute quantity"""
        pass

    @abstractmethod
    async def get_price(self, mapping: ProductMapping) -> Decimal:
        pass

    @abstractmethod
    async def set_price(self, mapping: ProductMapping, price: Decimal) -> None:
        pass

    @abstractmethod
    async def find_by_sku(self, sku: str) -> Optional[PlatformListing]:
        """Exact SKU / seller-code match, or None"""
        pass
