from .product_mapping import ProductMapping
from .inventory_transaction import InventoryTransaction
from .sync_job import SyncJob
from .order_acknowledgement import OrderAcknowledgement
from .system_log import SystemLog
from .exchange_rate import ExchangeRate

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'ProductMapping',
    'InventoryTransaction',
    'SyncJob',
    'OrderAcknowledgement',
    'SystemLog',
    'ExchangeRate',
]
