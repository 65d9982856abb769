"""
Shared enums and constants used across the sync engine.
"""

from enum import Enum


class PlatformName(str, Enum):
    NAVER = "NAVER"
    SHOPIFY = "SHOPIFY"

    @property
    def slug(self):
        return self.value.lower()


class PlatformScope(str, Enum):
    """Target of an inventory adjustment."""
    NAVER = "NAVER"
    SHOPIFY = "SHOPIFY"
    BOTH = "BOTH"

    def platforms(self):
        if self is PlatformScope.BOTH:
            return [PlatformName.NAVER, PlatformName.SHOPIFY]
        return [PlatformName(self.value)]


class AdjustType(str, Enum):
    SET = "set"
    ADD = "add"
    SUBTRACT = "subtract"


class Actor(str, Enum):
    SYSTEM = "system"
    MANUAL = "manual"
    WEBHOOK = "webhook"


class TransactionOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class MappingStatus(str, Enum):
    """Lifecycle status of a product mapping"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONTINUED = "discontinued"
    OUT_OF_STOCK = "out_of_stock"
    PENDING = "pending"


class SyncStatus(str, Enum):
    """Per-aspect sync status (inventory, price, product)."""
    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"
    SKIPPED = "skipped"


class SyncJobType(str, Enum):
    FULL = "full"
    INVENTORY = "inventory"
    PRICE = "price"
    ORDER = "order"


class SyncJobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED, SyncJobStatus.CANCELLED)


class ItemStatus(str, Enum):
    """Per-item result inside a job."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class AdjustmentStatus(str, Enum):
    """Overall outcome of one adjust() call."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class OrderAckStatus(str, Enum):
    APPLIED = "applied"
    EXCLUDED = "excluded"
    PARTIAL = "partial"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class RoundingStrategy(str, Enum):
    NONE = "none"
    ROUND = "round"    # 2 dp, half up
    CEIL = "ceil"      # up to whole unit
    CHARM = "charm"    # up to a .99 ending


# Naver order states excluded from stock decrement
TERMINAL_NEGATIVE_ORDER_STATUSES = frozenset({
    "CANCELED",
    "CANCELED_BY_NOPAYMENT",
    "RETURNED",
    "EXCHANGED",
})
