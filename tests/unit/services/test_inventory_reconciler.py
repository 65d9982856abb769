# Inventory reconciler unit tests
import asyncio
import gc

import pytest

from stocksync.core.enums import (
    Actor,
    AdjustmentStatus,
    AdjustType,
    PlatformName,
    PlatformScope,
    SyncStatus,
    TransactionOutcome,
)
from stocksync.core.exceptions import DatabaseError, MappingNotFound, TransientRemoteError, ValidationError
from stocksync.services import events
from stocksync.services.inventory_reconciler import InventoryReconciler, compute_new_quantity
from tests.mocks import MockData
from tests.mocks.mock_platform import MockPlatform

"""
1. Quantity arithmetic
"""


@pytest.mark.parametrize("current,delta", [(0, 0), (0, 5), (3, 5), (10, 3), (7, 7), (100, 1)])
def test_subtract_never_below_zero(current, delta):
    result = compute_new_quantity(current, delta, AdjustType.SUBTRACT)
    assert result >= 0
    assert result == max(0, current - delta)


@pytest.mark.parametrize("current,delta", [(0, 0), (4, 9), (12, 0)])
def test_set_and_add_are_exact(current, delta):
    assert compute_new_quantity(current, delta, AdjustType.SET) == delta
    assert compute_new_quantity(current, delta, AdjustType.ADD) == current + delta


def test_adjust_type_accepts_plain_strings():
    assert compute_new_quantity(5, 2, "subtract") == 3


"""
2. Adjustment scenarios
"""


@pytest.mark.asyncio
async def test_album_subtract_on_both_platforms(reconciler, store, naver, shopify, album):
    """Stock 10/10, subtract 3 on both -> 7/7 and two transactions 10 -> 7"""
    naver.stock_levels["ALBUM-001"] = 10
    shopify.stock_levels["ALBUM-001"] = 10

    result = await reconciler.adjust("ALBUM-001", PlatformScope.BOTH, AdjustType.SUBTRACT, 3, reason="sale")

    assert result.status == AdjustmentStatus.SUCCESS
    assert result.http_status == 200
    assert result.outcomes[PlatformName.NAVER].new == 7
    assert result.outcomes[PlatformName.SHOPIFY].new == 7
    assert naver.stock_levels["ALBUM-001"] == 7
    assert shopify.stock_levels["ALBUM-001"] == 7

    transactions = store.transactions
    assert len(transactions) == 2
    for tx in transactions:
        assert tx.previous_quantity == 10
        assert tx.new_quantity == 7
        assert tx.delta == 3
        assert tx.reason == "sale"
        assert tx.actor == Actor.MANUAL
        assert tx.outcome == TransactionOutcome.SUCCESS
    assert {tx.platform for tx in transactions} == {PlatformName.NAVER, PlatformName.SHOPIFY}


@pytest.mark.asyncio
async def test_partial_failure_is_reported_per_platform(reconciler, store, naver, shopify, album):
    """Naver exhausts its retries, Shopify succeeds -> partial, both attempts recorded"""
    naver.stock_levels["ALBUM-001"] = 10
    shopify.stock_levels["ALBUM-001"] = 10
    naver.should_fail = True
    naver.failure = TransientRemoteError("HTTP 503 from Naver", platform="NAVER", attempts=3)

    result = await reconciler.adjust("ALBUM-001", PlatformScope.BOTH, AdjustType.SUBTRACT, 3, reason="sale")

    assert result.status == AdjustmentStatus.PARTIAL
    assert result.http_status == 207
    assert result.failed_platforms == [PlatformName.NAVER]
    naver_outcome = result.outcomes[PlatformName.NAVER]
    assert naver_outcome.success is False
    assert naver_outcome.error_code == "TRANSIENT_REMOTE_ERROR"
    assert "after 3 attempts" in naver_outcome.error
    assert result.outcomes[PlatformName.SHOPIFY].success is True
    assert shopify.stock_levels["ALBUM-001"] == 7

    by_platform = {tx.platform: tx for tx in store.transactions}
    assert by_platform[PlatformName.SHOPIFY].outcome == TransactionOutcome.SUCCESS
    assert by_platform[PlatformName.NAVER].outcome == TransactionOutcome.ERROR
    assert by_platform[PlatformName.NAVER].new_quantity is None
    successful = [tx for tx in store.transactions if tx.outcome == TransactionOutcome.SUCCESS]
    assert len(successful) == 1

    mapping = await store.get_mapping("ALBUM-001")
    assert mapping.sync_state.inventory == SyncStatus.ERROR
    assert mapping.inventory.shopify.available == 7


@pytest.mark.asyncio
async def test_total_failure_maps_to_502(reconciler, naver, shopify, album):
    naver.should_fail = True
    shopify.should_fail = True

    result = await reconciler.adjust("ALBUM-001", PlatformScope.BOTH, AdjustType.SET, 1)

    assert result.status == AdjustmentStatus.FAILED
    assert result.http_status == 502


@pytest.mark.asyncio
async def test_single_platform_scope_only_touches_that_platform(reconciler, store, naver, shopify, album):
    result = await reconciler.adjust("album-001", "SHOPIFY", "add", 4)

    assert list(result.outcomes) == [PlatformName.SHOPIFY]
    assert shopify.stock_levels["ALBUM-001"] == 11
    assert naver.read_calls == 0
    assert len(store.transactions) == 1


@pytest.mark.asyncio
async def test_per_platform_amounts(reconciler, naver, shopify, album):
    await reconciler.adjust(
        "ALBUM-001",
        PlatformScope.BOTH,
        AdjustType.SET,
        {PlatformName.NAVER: 2, "SHOPIFY": 9},
    )
    assert naver.stock_levels["ALBUM-001"] == 2
    assert shopify.stock_levels["ALBUM-001"] == 9


@pytest.mark.asyncio
async def test_missing_platform_reference_is_recorded(reconciler, store, naver, shopify):
    await store.upsert_mapping(MockData.mapping(
        "ONLY-NAVER",
        shopify_product_id=None,
        shopify_variant_id=None,
        shopify_inventory_item_id=None,
        status="pending",
    ))
    naver.stock_levels["ONLY-NAVER"] = 4

    result = await reconciler.adjust("ONLY-NAVER", PlatformScope.BOTH, AdjustType.SUBTRACT, 1)

    assert result.status == AdjustmentStatus.PARTIAL
    assert result.outcomes[PlatformName.SHOPIFY].error_code == MappingNotFound.code
    assert shopify.read_calls == 0
    assert len(store.transactions) == 2


@pytest.mark.asyncio
async def test_unknown_sku_raises_mapping_not_found(reconciler, store):
    with pytest.raises(MappingNotFound):
        await reconciler.adjust("NOPE-1", PlatformScope.BOTH, AdjustType.SET, 1)
    assert store.transactions == []


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [-1, 1.5, "3", True])
async def test_invalid_amounts_rejected_before_any_call(reconciler, naver, album, amount):
    with pytest.raises(ValidationError):
        await reconciler.adjust("ALBUM-001", PlatformScope.BOTH, AdjustType.SET, amount)
    assert naver.read_calls == 0


@pytest.mark.asyncio
async def test_invalid_scope_rejected(reconciler, album):
    with pytest.raises(ValidationError):
        await reconciler.adjust("ALBUM-001", "EBAY", AdjustType.SET, 1)


@pytest.mark.asyncio
async def test_storage_failure_keeps_remote_outcomes(reconciler, store, event_bus, naver, shopify, album, mocker):
    """Both remote writes went through; only the Naver history row could not be stored"""
    original_append = store.append_transaction
    seen = []
    event_bus.subscribe(seen.append)

    async def flaky_append(transaction):
        if transaction.platform == PlatformName.NAVER:
            raise DatabaseError("db down")
        return await original_append(transaction)

    mocker.patch.object(store, "append_transaction", side_effect=flaky_append)

    result = await reconciler.adjust("ALBUM-001", PlatformScope.BOTH, AdjustType.SUBTRACT, 1)

    assert result.status == AdjustmentStatus.SUCCESS
    naver_outcome = result.outcomes[PlatformName.NAVER]
    assert (naver_outcome.previous, naver_outcome.new) == (5, 4)
    assert naver_outcome.history_error == "db down"
    assert result.outcomes[PlatformName.SHOPIFY].new == 6
    assert result.outcomes[PlatformName.SHOPIFY].history_error is None
    assert [tx.platform for tx in store.transactions] == [PlatformName.SHOPIFY]

    mapping = await store.get_mapping("ALBUM-001")
    assert mapping.inventory.naver.available == 4
    assert mapping.inventory.shopify.available == 6
    assert [e.name for e in seen] == [events.INVENTORY_ADJUSTED]


@pytest.mark.asyncio
async def test_adjustment_emits_event(reconciler, event_bus, album):
    seen = []
    event_bus.subscribe(seen.append)

    await reconciler.adjust("ALBUM-001", PlatformScope.NAVER, AdjustType.ADD, 1)

    assert [e.name for e in seen] == [events.INVENTORY_ADJUSTED]
    assert seen[0].payload["sku"] == "ALBUM-001"
    assert seen[0].payload["status"] == "success"


"""
3. Concurrency
"""


@pytest.mark.asyncio
async def test_concurrent_adjustments_for_same_pair_are_serialized(store):
    naver = MockPlatform(PlatformName.NAVER, read_delay=0.02)
    shopify = MockPlatform(PlatformName.SHOPIFY, read_delay=0.02)
    reconciler = InventoryReconciler(store, {PlatformName.NAVER: naver, PlatformName.SHOPIFY: shopify})
    await store.upsert_mapping(MockData.mapping("ALBUM-001"))
    naver.stock_levels["ALBUM-001"] = 10

    await asyncio.gather(*(
        reconciler.adjust("ALBUM-001", PlatformScope.NAVER, AdjustType.SUBTRACT, 1)
        for _ in range(5)
    ))

    # Without serialization every read would see 10 and the result would be 9
    assert naver.stock_levels["ALBUM-001"] == 5
    assert naver.max_in_flight["ALBUM-001"] == 1
    previous = sorted(tx.previous_quantity for tx in store.transactions)
    assert previous == [6, 7, 8, 9, 10]


@pytest.mark.asyncio
async def test_different_platforms_do_not_block_each_other(store, locks):
    naver = MockPlatform(PlatformName.NAVER, read_delay=0.05)
    shopify = MockPlatform(PlatformName.SHOPIFY)
    reconciler = InventoryReconciler(
        store, {PlatformName.NAVER: naver, PlatformName.SHOPIFY: shopify}, locks=locks
    )
    await store.upsert_mapping(MockData.mapping("ALBUM-001"))

    slow = asyncio.create_task(reconciler.adjust("ALBUM-001", "NAVER", "set", 3))
    await asyncio.sleep(0.01)
    assert locks.is_locked("ALBUM-001", PlatformName.NAVER)

    await reconciler.adjust("ALBUM-001", "SHOPIFY", "set", 4)
    assert not slow.done()
    await slow

    assert naver.stock_levels["ALBUM-001"] == 3
    assert shopify.stock_levels["ALBUM-001"] == 4


@pytest.mark.asyncio
async def test_released_locks_are_dropped(reconciler, store, locks):
    for i in range(20):
        await store.upsert_mapping(MockData.mapping(f"ALBUM-{i:03d}"))

    await asyncio.gather(*(
        reconciler.adjust(f"ALBUM-{i:03d}", PlatformScope.BOTH, AdjustType.SET, 1) for i in range(20)
    ))
    gc.collect()

    assert len(locks) == 0
    assert locks.held == 0


"""
4. Transaction history
"""


@pytest.mark.asyncio
async def test_transaction_history_is_paginated_newest_first(reconciler, album):
    for quantity in range(1, 6):
        await reconciler.adjust("ALBUM-001", PlatformScope.NAVER, AdjustType.SET, quantity)

    page = await reconciler.get_transaction_history("ALBUM-001", page=1, limit=2)

    assert page.total == 5
    assert page.total_pages == 3
    assert [tx.new_quantity for tx in page.items] == [5, 4]

    last = await reconciler.get_transaction_history("ALBUM-001", page=3, limit=2)
    assert [tx.new_quantity for tx in last.items] == [1]


@pytest.mark.asyncio
async def test_transaction_history_rejects_bad_limits(reconciler):
    with pytest.raises(ValidationError):
        await reconciler.get_transaction_history("ALBUM-001", page=0)
    with pytest.raises(ValidationError):
        await reconciler.get_transaction_history("ALBUM-001", limit=101)
