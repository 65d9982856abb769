import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from stocksync.core.enums import PlatformName
from stocksync.core.exceptions import MappingNotFound, PlatformAPIError
from stocksync.integrations.base import PlatformInterface
from stocksync.schemas import PlatformListing, ProductMapping


class MockPlatform(PlatformInterface):
    """
    In-memory platform keyed by SKU.

    ``should_fail`` makes every call raise ``failure`` (a PlatformAPIError by
    default). ``read_delay`` sleeps between a get_stock and the following
    set_stock so tests can provoke interleaving.
    """

    def __init__(self, name: PlatformName, read_delay: float = 0.0):
        self.name = name
        self.read_delay = read_delay
        self.stock_levels: Dict[str, int] = {}
        self.prices: Dict[str, Decimal] = {}
        self.listings: Dict[str, PlatformListing] = {}
        self.update_calls: list = []  # Track calls for testing
        self.price_calls: list = []
        self.read_calls = 0
        self.should_fail = False  # Toggle to test error scenarios
        self.failure: Exception = PlatformAPIError(f"{name.value} unavailable", platform=name.value)
        self.in_flight: Dict[str, int] = {}
        self.max_in_flight: Dict[str, int] = {}

    def _check(self, mapping: ProductMapping):
        if self.should_fail:
            raise self.failure
        if not mapping.has_reference(self.name):
            raise MappingNotFound(f"No {self.name.value} reference", platform=self.name.value, sku=mapping.sku)

    async def get_stock(self, mapping):
        self._check(mapping)
        self.read_calls += 1
        count = self.in_flight.get(mapping.sku, 0) + 1
        self.in_flight[mapping.sku] = count
        self.max_in_flight[mapping.sku] = max(self.max_in_flight.get(mapping.sku, 0), count)
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        return self.stock_levels.get(mapping.sku, 0)

    async def set_stock(self, mapping, quantity):
        try:
            self._check(mapping)
            self.update_calls.append({
                'sku': mapping.sku,
                'quantity': quantity,
                'timestamp': datetime.now()
            })
            self.stock_levels[mapping.sku] = quantity
        finally:
            if self.in_flight.get(mapping.sku):
                self.in_flight[mapping.sku] -= 1

    async def get_price(self, mapping):
        self._check(mapping)
        return self.prices.get(mapping.sku)

    async def set_price(self, mapping, price):
        self._check(mapping)
        self.price_calls.append({'sku': mapping.sku, 'price': price})
        self.prices[mapping.sku] = price

    async def find_by_sku(self, sku: str) -> Optional[PlatformListing]:
        if self.should_fail:
            raise self.failure
        return self.listings.get(sku)

    def clear_history(self):
        """Clear test history"""
        self.update_calls = []
        self.price_calls = []
        self.read_calls = 0
