# stocksync/services/store/base.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from stocksync.core.enums import PlatformName, SyncJobStatus, SyncJobType
from stocksync.schemas import (
    ExchangeRate,
    InventoryTransaction,
    OrderAcknowledgement,
    ProductMapping,
    SyncJob,
    SystemLogEntry,
)


class SyncStore(ABC):
    """
    Persistence contract used by the sync engine.

    Implementations hand out copies: mutating a returned record has no effect
    until it is passed back through the matching save/upsert call.
    """

    # --- Product mappings ---

    @abstractmethod
    async def get_mapping(self, sku: str, include_deleted: bool = False) -> Optional[ProductMapping]:
        pass

    @abstractmethod
    async def find_mapping_by_platform_ref(self, platform: PlatformName, reference: str) -> Optional[ProductMapping]:
        """Look a mapping up by any of its identifiers on one platform."""
        pass

    @abstractmethod
    async def list_active_mappings(self) -> List[ProductMapping]:
        pass

    @abstractmethod
    async def upsert_mapping(self, mapping: ProductMapping) -> ProductMapping:
        pass

    @abstractmethod
    async def soft_delete_mapping(self, sku: str) -> Optional[ProductMapping]:
        pass

    # --- Inventory transactions (append-only) ---

    @abstractmethod
    async def append_transaction(self, transaction: InventoryTransaction) -> InventoryTransaction:
        pass

    @abstractmethod
    async def list_transactions(self, sku: str, page: int = 1, limit: int = 20) -> List[InventoryTransaction]:
        """Newest first."""
        pass

    @abstractmethod
    async def count_transactions(self, sku: Optional[str] = None, order_id: Optional[str] = None) -> int:
        pass

    # --- Jobs ---

    @abstractmethod
    async def save_job(self, job: SyncJob) -> SyncJob:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[SyncJob]:
        pass

    @abstractmethod
    async def find_last_job(self, job_type: SyncJobType, status: Optional[SyncJobStatus] = None) -> Optional[SyncJob]:
        pass

    # --- Order acknowledgements ---

    @abstractmethod
    async def get_order_ack(self, order_id: str) -> Optional[OrderAcknowledgement]:
        pass

    @abstractmethod
    async def save_order_ack(self, ack: OrderAcknowledgement) -> OrderAcknowledgement:
        pass

    # --- Audit log ---

    @abstractmethod
    async def append_log(self, entry: SystemLogEntry) -> SystemLogEntry:
        pass

    @abstractmethod
    async def list_logs(self, category: Optional[str] = None, limit: int = 100) -> List[SystemLogEntry]:
        pass

    @abstractmethod
    async def purge_logs(self, before: datetime, levels: Iterable[str]) -> int:
        """Delete entries older than ``before`` whose level is in ``levels``."""
        pass

    # --- Exchange rates ---

    @abstractmethod
    async def save_exchange_rate(self, rate: ExchangeRate) -> ExchangeRate:
        pass

    @abstractmethod
    async def latest_exchange_rate(self, base: str, target: str) -> Optional[ExchangeRate]:
        pass
