# stocksync/services/store/memory.py
"""
In-process store for single-instance deployments without a database, and for tests.
"""
import itertools
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from stocksync.core.enums import LogLevel, MappingStatus, PlatformName, SyncJobStatus, SyncJobType
from stocksync.core.utils import normalize_sku, utcnow
from stocksync.schemas import (
    ExchangeRate,
    InventoryTransaction,
    OrderAcknowledgement,
    ProductMapping,
    SyncJob,
    SystemLogEntry,
)
from stocksync.services.store.base import SyncStore


class InMemorySyncStore(SyncStore):

    def __init__(self):
        self.mappings: Dict[str, ProductMapping] = {}
        self.transactions: List[InventoryTransaction] = []
        self.jobs: Dict[str, SyncJob] = {}
        self.order_acks: Dict[str, OrderAcknowledgement] = {}
        self.logs: List[SystemLogEntry] = []
        self.exchange_rates: List[ExchangeRate] = []
        self._ids = itertools.count(1)

    # --- Product mappings ---

    async def get_mapping(self, sku, include_deleted=False):
        mapping = self.mappings.get(normalize_sku(sku))
        if mapping is None or (mapping.deleted_at and not include_deleted):
            return None
        return mapping.model_copy(deep=True)

    async def find_mapping_by_platform_ref(self, platform, reference):
        reference = str(reference)
        for mapping in self.mappings.values():
            if mapping.deleted_at:
                continue
            if platform == PlatformName.NAVER:
                refs = (mapping.naver_product_id, mapping.naver_channel_product_id)
            else:
                refs = (mapping.shopify_product_id, mapping.shopify_variant_id, mapping.shopify_inventory_item_id)
            if reference in refs:
                return mapping.model_copy(deep=True)
        return None

    async def list_active_mappings(self):
        return [
            m.model_copy(deep=True)
            for m in sorted(self.mappings.values(), key=lambda m: m.sku)
            if m.is_active
        ]

    async def upsert_mapping(self, mapping):
        now = utcnow()
        stored = mapping.model_copy(deep=True)
        existing = self.mappings.get(stored.sku)
        if existing is None:
            stored.id = stored.id or next(self._ids)
            stored.created_at = stored.created_at or now
        else:
            stored.id = existing.id
            stored.created_at = existing.created_at
        stored.updated_at = now
        self.mappings[stored.sku] = stored
        return stored.model_copy(deep=True)

    async def soft_delete_mapping(self, sku):
        mapping = self.mappings.get(normalize_sku(sku))
        if mapping is None or mapping.deleted_at:
            return None
        mapping.deleted_at = utcnow()
        mapping.status = MappingStatus.INACTIVE
        mapping.updated_at = mapping.deleted_at
        return mapping.model_copy(deep=True)

    # --- Inventory transactions ---

    async def append_transaction(self, transaction):
        stored = transaction.model_copy(update={
            "id": next(self._ids),
            "created_at": transaction.created_at or utcnow(),
        })
        self.transactions.append(stored)
        return stored

    async def list_transactions(self, sku, page=1, limit=20):
        sku = normalize_sku(sku)
        matching = [t for t in reversed(self.transactions) if t.sku == sku]
        start = (page - 1) * limit
        return matching[start:start + limit]

    async def count_transactions(self, sku=None, order_id=None):
        sku = normalize_sku(sku) if sku else None
        return sum(
            1 for t in self.transactions
            if (sku is None or t.sku == sku) and (order_id is None or t.order_id == order_id)
        )

    # --- Jobs ---

    async def save_job(self, job):
        self.jobs[job.id] = job.model_copy(deep=True)
        return job

    async def get_job(self, job_id):
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def find_last_job(self, job_type: SyncJobType, status: Optional[SyncJobStatus] = None):
        candidates = [
            j for j in self.jobs.values()
            if j.job_type == job_type and (status is None or j.status == status)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda j: j.created_at).model_copy(deep=True)

    # --- Order acknowledgements ---

    async def get_order_ack(self, order_id):
        ack = self.order_acks.get(str(order_id))
        return ack.model_copy(deep=True) if ack else None

    async def save_order_ack(self, ack):
        now = utcnow()
        existing = self.order_acks.get(ack.order_id)
        stored = ack.model_copy(deep=True, update={
            "created_at": existing.created_at if existing else (ack.created_at or now),
            "updated_at": now,
        })
        self.order_acks[ack.order_id] = stored
        return stored.model_copy(deep=True)

    # --- Audit log ---

    async def append_log(self, entry):
        stored = entry.model_copy(update={"id": next(self._ids)})
        self.logs.append(stored)
        return stored

    async def list_logs(self, category=None, limit=100):
        matching = [e for e in reversed(self.logs) if category is None or e.category == category]
        return matching[:limit]

    async def purge_logs(self, before: datetime, levels: Iterable[str]) -> int:
        levels = {LogLevel(level) for level in levels}
        keep = [e for e in self.logs if not (e.level in levels and e.created_at < before)]
        removed = len(self.logs) - len(keep)
        self.logs = keep
        return removed

    # --- Exchange rates ---

    async def save_exchange_rate(self, rate):
        stored = rate.model_copy(update={"id": next(self._ids)})
        self.exchange_rates.append(stored)
        return stored

    async def latest_exchange_rate(self, base, target):
        matching = [
            r for r in self.exchange_rates
            if r.base_currency == base and r.target_currency == target
        ]
        if not matching:
            return None
        return max(matching, key=lambda r: (r.fetched_at, r.id))
