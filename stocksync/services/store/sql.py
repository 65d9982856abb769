# stocksync/services/store/sql.py
"""
SQLAlchemy-backed store (PostgreSQL via asyncpg in production, SQLite in tests).
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from stocksync import models
from stocksync.core.enums import LogLevel, MappingStatus, PlatformName, SyncJobStatus, SyncJobType
from stocksync.core.exceptions import DatabaseError
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

logger = logging.getLogger(__name__)

_MAPPING_JSON_FIELDS = ("pricing", "inventory", "sync_state")


def _mapping_values(mapping: ProductMapping) -> dict:
    data = mapping.model_dump(exclude={"id", "created_at", "updated_at"})
    for field in _MAPPING_JSON_FIELDS:
        data[field] = getattr(mapping, field).model_dump(mode="json")
    data["status"] = mapping.status.value
    return data


class SqlAlchemySyncStore(SyncStore):

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _commit(self, session, what: str):
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error while saving {what}: {e}")
            raise DatabaseError(f"Failed to save {what}: {e}") from e

    # --- Product mappings ---

    async def get_mapping(self, sku, include_deleted=False):
        async with self.session_factory() as session:
            stmt = select(models.ProductMapping).where(models.ProductMapping.sku == normalize_sku(sku))
            if not include_deleted:
                stmt = stmt.where(models.ProductMapping.deleted_at.is_(None))
            row = (await session.execute(stmt)).scalar_one_or_none()
            return ProductMapping.from_orm_model(row) if row else None

    async def find_mapping_by_platform_ref(self, platform, reference):
        reference = str(reference)
        if platform == PlatformName.NAVER:
            columns = (models.ProductMapping.naver_product_id, models.ProductMapping.naver_channel_product_id)
        else:
            columns = (
                models.ProductMapping.shopify_product_id,
                models.ProductMapping.shopify_variant_id,
                models.ProductMapping.shopify_inventory_item_id,
            )
        async with self.session_factory() as session:
            stmt = (
                select(models.ProductMapping)
                .where(or_(*(c == reference for c in columns)))
                .where(models.ProductMapping.deleted_at.is_(None))
                .limit(1)
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return ProductMapping.from_orm_model(row) if row else None

    async def list_active_mappings(self):
        async with self.session_factory() as session:
            stmt = (
                select(models.ProductMapping)
                .where(models.ProductMapping.status == MappingStatus.ACTIVE.value)
                .where(models.ProductMapping.deleted_at.is_(None))
                .order_by(models.ProductMapping.sku)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [ProductMapping.from_orm_model(r) for r in rows]

    async def upsert_mapping(self, mapping):
        values = _mapping_values(mapping)
        async with self.session_factory() as session:
            stmt = select(models.ProductMapping).where(models.ProductMapping.sku == mapping.sku)
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                row = models.ProductMapping(**values)
                session.add(row)
            else:
                for key, value in values.items():
                    setattr(row, key, value)
                row.updated_at = utcnow()
            await self._commit(session, f"mapping {mapping.sku}")
            await session.refresh(row)
            return ProductMapping.from_orm_model(row)

    async def soft_delete_mapping(self, sku):
        async with self.session_factory() as session:
            stmt = (
                select(models.ProductMapping)
                .where(models.ProductMapping.sku == normalize_sku(sku))
                .where(models.ProductMapping.deleted_at.is_(None))
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            row.deleted_at = utcnow()
            row.status = MappingStatus.INACTIVE.value
            await self._commit(session, f"mapping {row.sku}")
            await session.refresh(row)
            return ProductMapping.from_orm_model(row)

    # --- Inventory transactions ---

    async def append_transaction(self, transaction):
        data = transaction.model_dump(exclude={"id"}, mode="json")
        data["created_at"] = transaction.created_at or utcnow()
        async with self.session_factory() as session:
            row = models.InventoryTransaction(**data)
            session.add(row)
            await self._commit(session, f"transaction for {transaction.sku}")
            await session.refresh(row)
            return InventoryTransaction.from_orm_model(row)

    async def list_transactions(self, sku, page=1, limit=20):
        async with self.session_factory() as session:
            stmt = (
                select(models.InventoryTransaction)
                .where(models.InventoryTransaction.sku == normalize_sku(sku))
                .order_by(models.InventoryTransaction.created_at.desc(), models.InventoryTransaction.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [InventoryTransaction.from_orm_model(r) for r in rows]

    async def count_transactions(self, sku=None, order_id=None):
        async with self.session_factory() as session:
            stmt = select(func.count(models.InventoryTransaction.id))
            if sku:
                stmt = stmt.where(models.InventoryTransaction.sku == normalize_sku(sku))
            if order_id:
                stmt = stmt.where(models.InventoryTransaction.order_id == order_id)
            return (await session.execute(stmt)).scalar_one()

    # --- Jobs ---

    async def save_job(self, job):
        data = job.model_dump(mode="json")
        for field in ("created_at", "started_at", "completed_at"):
            data[field] = getattr(job, field)
        async with self.session_factory() as session:
            row = await session.get(models.SyncJob, job.id)
            if row is None:
                session.add(models.SyncJob(**data))
            else:
                for key, value in data.items():
                    setattr(row, key, value)
            await self._commit(session, f"job {job.id}")
        return job

    async def get_job(self, job_id):
        async with self.session_factory() as session:
            row = await session.get(models.SyncJob, job_id)
            return SyncJob.from_orm_model(row) if row else None

    async def find_last_job(self, job_type: SyncJobType, status: Optional[SyncJobStatus] = None):
        async with self.session_factory() as session:
            stmt = select(models.SyncJob).where(models.SyncJob.job_type == job_type.value)
            if status is not None:
                stmt = stmt.where(models.SyncJob.status == status.value)
            stmt = stmt.order_by(models.SyncJob.created_at.desc()).limit(1)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return SyncJob.from_orm_model(row) if row else None

    # --- Order acknowledgements ---

    async def get_order_ack(self, order_id):
        async with self.session_factory() as session:
            row = await session.get(models.OrderAcknowledgement, str(order_id))
            return OrderAcknowledgement.from_orm_model(row) if row else None

    async def save_order_ack(self, ack):
        data = ack.model_dump(exclude={"created_at", "updated_at"}, mode="json")
        async with self.session_factory() as session:
            row = await session.get(models.OrderAcknowledgement, ack.order_id)
            if row is None:
                row = models.OrderAcknowledgement(**data)
                session.add(row)
            else:
                for key, value in data.items():
                    setattr(row, key, value)
                row.updated_at = utcnow()
            await self._commit(session, f"order acknowledgement {ack.order_id}")
            await session.refresh(row)
            return OrderAcknowledgement.from_orm_model(row)

    # --- Audit log ---

    async def append_log(self, entry):
        data = entry.model_dump(exclude={"id"}, mode="json")
        data["created_at"] = entry.created_at
        async with self.session_factory() as session:
            row = models.SystemLog(**data)
            session.add(row)
            await self._commit(session, "system log entry")
            await session.refresh(row)
            return SystemLogEntry.from_orm_model(row)

    async def list_logs(self, category=None, limit=100):
        async with self.session_factory() as session:
            stmt = select(models.SystemLog)
            if category:
                stmt = stmt.where(models.SystemLog.category == category)
            stmt = stmt.order_by(models.SystemLog.created_at.desc(), models.SystemLog.id.desc()).limit(limit)
            rows = (await session.execute(stmt)).scalars().all()
            return [SystemLogEntry.from_orm_model(r) for r in rows]

    async def purge_logs(self, before: datetime, levels: Iterable[str]) -> int:
        async with self.session_factory() as session:
            stmt = (
                delete(models.SystemLog)
                .where(models.SystemLog.created_at < before)
                .where(models.SystemLog.level.in_([LogLevel(level).value for level in levels]))
            )
            result = await session.execute(stmt)
            await self._commit(session, "log purge")
            return result.rowcount or 0

    # --- Exchange rates ---

    async def save_exchange_rate(self, rate):
        async with self.session_factory() as session:
            row = models.ExchangeRate(
                base_currency=rate.base_currency,
                target_currency=rate.target_currency,
                rate=rate.rate,
                source=rate.source,
                fetched_at=rate.fetched_at,
            )
            session.add(row)
            await self._commit(session, "exchange rate")
            await session.refresh(row)
            return ExchangeRate.from_orm_model(row)

    async def latest_exchange_rate(self, base, target):
        async with self.session_factory() as session:
            stmt = (
                select(models.ExchangeRate)
                .where(models.ExchangeRate.base_currency == base)
                .where(models.ExchangeRate.target_currency == target)
                .order_by(models.ExchangeRate.fetched_at.desc(), models.ExchangeRate.id.desc())
                .limit(1)
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return ExchangeRate.from_orm_model(row) if row else None
