from .base import BaseSchema, TimestampedSchema
from .mapping import (
    InventoryPolicy,
    MappingCreate,
    MappingUpdate,
    PlatformListing,
    PlatformStock,
    PricingPolicy,
    ProductMapping,
    SyncState,
)
from .inventory import (
    AdjustInventoryRequest,
    AdjustmentResult,
    InventoryTransaction,
    PlatformOutcome,
    TransactionPage,
)
from .sync import (
    ExchangeRate,
    ItemResult,
    JobStateError,
    OrderAcknowledgement,
    OrderLine,
    SyncJob,
    SystemLogEntry,
)

__all__ = [
    "BaseSchema",
    "TimestampedSchema",
    "InventoryPolicy",
    "MappingCreate",
    "MappingUpdate",
    "PlatformListing",
    "PlatformStock",
    "PricingPolicy",
    "ProductMapping",
    "SyncState",
    "AdjustInventoryRequest",
    "AdjustmentResult",
    "InventoryTransaction",
    "PlatformOutcome",
    "TransactionPage",
    "ExchangeRate",
    "ItemResult",
    "JobStateError",
    "OrderAcknowledgement",
    "OrderLine",
    "SyncJob",
    "SystemLogEntry",
]
