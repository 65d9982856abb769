# SQLAlchemy store against a throwaway SQLite database
from datetime import timedelta
from decimal import Decimal

import pytest

from stocksync.core.enums import (
    Actor,
    AdjustType,
    LogLevel,
    MappingStatus,
    OrderAckStatus,
    PlatformName,
    SyncJobStatus,
    SyncJobType,
    SyncStatus,
    TransactionOutcome,
)
from stocksync.core.utils import utcnow
from stocksync.database import create_all, make_engine, make_session_factory
from stocksync.schemas import (
    ExchangeRate,
    InventoryTransaction,
    OrderAcknowledgement,
    SyncJob,
    SystemLogEntry,
)
from stocksync.services.inventory_reconciler import InventoryReconciler
from stocksync.services.store.sql import SqlAlchemySyncStore
from tests.mocks import MockData

pytestmark = pytest.mark.integration


@pytest.fixture
async def sql_store(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'stocksync.db'}")
    await create_all(engine)
    yield SqlAlchemySyncStore(make_session_factory(engine))
    await engine.dispose()


def transaction(sku="ALBUM-001", **overrides):
    data = dict(
        sku=sku,
        platform=PlatformName.NAVER,
        adjust_type=AdjustType.SUBTRACT,
        previous_quantity=10,
        delta=1,
        new_quantity=9,
        actor=Actor.MANUAL,
        outcome=TransactionOutcome.SUCCESS,
    )
    data.update(overrides)
    return InventoryTransaction(**data)


@pytest.mark.asyncio
async def test_mapping_round_trip_keeps_policy_blocks(sql_store):
    mapping = MockData.mapping()
    mapping.pricing.margin_percent = Decimal("22.5")
    mapping.inventory.shopify.safety_stock = 3
    mapping.mark_synced("inventory")

    saved = await sql_store.upsert_mapping(mapping)
    loaded = await sql_store.get_mapping("album-001")

    assert saved.id is not None
    assert loaded.pricing.margin_percent == Decimal("22.5")
    assert loaded.inventory.shopify.safety_stock == 3
    assert loaded.sync_state.inventory == SyncStatus.SYNCED
    assert loaded.status == MappingStatus.ACTIVE


@pytest.mark.asyncio
async def test_upsert_updates_existing_row(sql_store):
    first = await sql_store.upsert_mapping(MockData.mapping())
    changed = MockData.mapping(product_name="Renamed")

    second = await sql_store.upsert_mapping(changed)

    assert second.id == first.id
    assert (await sql_store.get_mapping("ALBUM-001")).product_name == "Renamed"


@pytest.mark.asyncio
async def test_lookup_by_platform_reference(sql_store):
    await sql_store.upsert_mapping(MockData.mapping())

    by_naver = await sql_store.find_mapping_by_platform_ref(PlatformName.NAVER, "2000001")
    by_shopify = await sql_store.find_mapping_by_platform_ref(
        PlatformName.SHOPIFY, "gid://shopify/ProductVariant/4000001"
    )

    assert by_naver.sku == by_shopify.sku == "ALBUM-001"
    assert await sql_store.find_mapping_by_platform_ref(PlatformName.NAVER, "999") is None


@pytest.mark.asyncio
async def test_soft_delete(sql_store):
    await sql_store.upsert_mapping(MockData.mapping())
    await sql_store.upsert_mapping(MockData.mapping("ALBUM-002"))

    deleted = await sql_store.soft_delete_mapping("ALBUM-001")

    assert deleted.deleted_at is not None
    assert await sql_store.get_mapping("ALBUM-001") is None
    assert [m.sku for m in await sql_store.list_active_mappings()] == ["ALBUM-002"]
    assert await sql_store.soft_delete_mapping("ALBUM-001") is None


@pytest.mark.asyncio
async def test_transactions_paginate_newest_first(sql_store):
    base = utcnow()
    for i in range(5):
        await sql_store.append_transaction(transaction(delta=i, created_at=base + timedelta(seconds=i)))
    await sql_store.append_transaction(transaction("ALBUM-002", order_id="O-1"))

    first_page = await sql_store.list_transactions("ALBUM-001", page=1, limit=2)
    last_page = await sql_store.list_transactions("ALBUM-001", page=3, limit=2)

    assert [t.delta for t in first_page] == [4, 3]
    assert [t.delta for t in last_page] == [0]
    assert await sql_store.count_transactions(sku="ALBUM-001") == 5
    assert await sql_store.count_transactions(order_id="O-1") == 1


@pytest.mark.asyncio
async def test_reconciler_writes_through_sql_store(sql_store, platforms, naver, shopify):
    await sql_store.upsert_mapping(MockData.mapping())
    naver.stock_levels["ALBUM-001"] = 10
    shopify.stock_levels["ALBUM-001"] = 10
    reconciler = InventoryReconciler(sql_store, platforms)

    result = await reconciler.adjust("ALBUM-001", "BOTH", "subtract", 3, reason="damaged")
    history = await reconciler.get_transaction_history("ALBUM-001")

    assert result.http_status == 200
    assert history.total == 2
    assert {t.new_quantity for t in history.items} == {7}
    mapping = await sql_store.get_mapping("ALBUM-001")
    assert mapping.inventory.naver.available == 7


@pytest.mark.asyncio
async def test_job_save_and_find_last(sql_store):
    older = SyncJob(job_type=SyncJobType.ORDER, created_at=utcnow() - timedelta(hours=1))
    older.start()
    older.details["window_to"] = "2024-05-01T12:00:00+00:00"
    older.complete()
    await sql_store.save_job(older)

    newer = SyncJob(job_type=SyncJobType.ORDER)
    await sql_store.save_job(newer)
    newer.start()
    newer.fail("AUTH_FAILURE: denied")
    await sql_store.save_job(newer)

    last_completed = await sql_store.find_last_job(SyncJobType.ORDER, SyncJobStatus.COMPLETED)
    last_any = await sql_store.find_last_job(SyncJobType.ORDER)

    assert last_completed.id == older.id
    assert last_completed.details["window_to"] == "2024-05-01T12:00:00+00:00"
    assert last_any.id == newer.id
    assert (await sql_store.get_job(newer.id)).error_message == "AUTH_FAILURE: denied"
    assert await sql_store.get_job("missing") is None


@pytest.mark.asyncio
async def test_order_ack_upsert(sql_store):
    ack = OrderAcknowledgement(order_id="O-1", status=OrderAckStatus.PARTIAL, applied_line_ids=["P-1"])
    await sql_store.save_order_ack(ack)

    ack.applied_line_ids.append("P-2")
    ack.status = OrderAckStatus.APPLIED
    await sql_store.save_order_ack(ack)

    loaded = await sql_store.get_order_ack("O-1")
    assert loaded.status == OrderAckStatus.APPLIED
    assert loaded.applied_line_ids == ["P-1", "P-2"]
    assert loaded.created_at is not None


@pytest.mark.asyncio
async def test_log_purge(sql_store):
    old = utcnow() - timedelta(days=40)
    await sql_store.append_log(SystemLogEntry(level=LogLevel.INFO, category="scheduler", message="a", created_at=old))
    await sql_store.append_log(SystemLogEntry(level=LogLevel.ERROR, category="scheduler", message="b", created_at=old))
    await sql_store.append_log(SystemLogEntry(level=LogLevel.INFO, category="other", message="c"))

    deleted = await sql_store.purge_logs(utcnow() - timedelta(days=30), ["debug", "info"])

    assert deleted == 1
    assert [e.message for e in await sql_store.list_logs(category="scheduler")] == ["b"]


@pytest.mark.asyncio
async def test_latest_exchange_rate(sql_store):
    await sql_store.save_exchange_rate(ExchangeRate(
        base_currency="KRW", target_currency="USD", rate=Decimal("0.0007"),
        fetched_at=utcnow() - timedelta(days=1),
    ))
    await sql_store.save_exchange_rate(ExchangeRate(
        base_currency="KRW", target_currency="USD", rate=Decimal("0.00074"), source="manual",
    ))

    latest = await sql_store.latest_exchange_rate("KRW", "USD")

    assert latest.rate == Decimal("0.00074")
    assert latest.source == "manual"
    assert await sql_store.latest_exchange_rate("KRW", "EUR") is None
