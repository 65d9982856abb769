# HTTP surface tests: inventory, mappings, sync jobs, health
import time

import pytest
from fastapi.testclient import TestClient

from stocksync.core.exceptions import TransientRemoteError
from stocksync.integrations.setup import build_sync_engine
from stocksync.main import create_app

ALBUM = {
    "sku": "ALBUM-001",
    "naver_product_id": "1000001",
    "naver_channel_product_id": "2000001",
    "shopify_product_id": "gid://shopify/Product/3000001",
    "shopify_variant_id": "gid://shopify/ProductVariant/4000001",
    "shopify_inventory_item_id": "gid://shopify/InventoryItem/5000001",
    "product_name": "Test Album",
}


@pytest.fixture
def engine(settings, store, platforms, offline_http_client):
    return build_sync_engine(settings, store, http_client=offline_http_client, platforms=platforms)


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine=engine)) as test_client:
        yield test_client


@pytest.fixture
def album(client, naver, shopify):
    response = client.post("/api/mappings", json=ALBUM)
    assert response.status_code == 201
    naver.stock_levels["ALBUM-001"] = 10
    shopify.stock_levels["ALBUM-001"] = 10
    return response.json()


def wait_for_job(client, job_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = client.get(f"/api/sync/jobs/{job_id}").json()
        if job["status"] in ("completed", "failed", "cancelled"):
            return job
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} did not finish")


"""
1. Inventory adjustment
"""


def test_adjust_both_platforms(client, album, naver, shopify):
    response = client.post("/api/inventory/album-001/adjust", json={
        "platform": "BOTH", "type": "subtract", "quantity": 3, "reason": "damaged in storage",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["sku"] == "ALBUM-001"
    assert body["status"] == "success"
    assert body["results"]["NAVER"] == {
        "success": True, "previous": 10, "new": 7, "delta": 3, "error": None, "error_code": None,
        "history_error": None,
    }
    assert naver.stock_levels["ALBUM-001"] == shopify.stock_levels["ALBUM-001"] == 7


def test_adjust_partial_failure_is_207(client, album, naver, shopify):
    naver.should_fail = True
    naver.failure = TransientRemoteError("Naver timed out", platform="NAVER", attempts=3)

    response = client.post("/api/inventory/ALBUM-001/adjust", json={"type": "subtract", "quantity": 3})

    assert response.status_code == 207
    body = response.json()
    assert body["status"] == "partial"
    assert body["results"]["NAVER"]["success"] is False
    assert body["results"]["NAVER"]["error_code"] == "TRANSIENT_REMOTE_ERROR"
    assert "after 3 attempts" in body["results"]["NAVER"]["error"]
    assert body["results"]["SHOPIFY"]["new"] == 7


def test_adjust_total_failure_is_502(client, album, naver, shopify):
    naver.should_fail = shopify.should_fail = True

    response = client.post("/api/inventory/ALBUM-001/adjust", json={"type": "set", "quantity": 1})

    assert response.status_code == 502
    assert response.json()["status"] == "failed"


def test_adjust_single_platform_with_per_platform_amount(client, album, naver, shopify):
    response = client.post("/api/inventory/ALBUM-001/adjust", json={
        "platform": "SHOPIFY", "type": "add", "shopify_quantity": 4,
    })

    assert response.status_code == 200
    assert list(response.json()["results"]) == ["SHOPIFY"]
    assert shopify.stock_levels["ALBUM-001"] == 14
    assert naver.update_calls == []


def test_adjust_unknown_sku_is_404(client):
    response = client.post("/api/inventory/NOPE/adjust", json={"type": "set", "quantity": 1})

    assert response.status_code == 404
    assert response.json()["code"] == "MAPPING_NOT_FOUND"


def test_adjust_without_platform_reference_is_404(client):
    client.post("/api/mappings", json={"sku": "ALBUM-002", "naver_product_id": "1000002"})

    response = client.post("/api/inventory/ALBUM-002/adjust", json={
        "platform": "SHOPIFY", "type": "set", "quantity": 1,
    })

    assert response.status_code == 404


@pytest.mark.parametrize("payload", [
    {"type": "subtract"},
    {"type": "subtract", "quantity": -1},
    {"type": "subtract", "quantity": 1.5},
    {"type": "remove", "quantity": 1},
    {"platform": "EBAY", "type": "set", "quantity": 1},
])
def test_adjust_rejects_bad_input(client, album, naver, shopify, payload):
    response = client.post("/api/inventory/ALBUM-001/adjust", json=payload)

    assert response.status_code == 422
    assert naver.update_calls == [] and shopify.update_calls == []


def test_history_newest_first(client, album):
    for quantity in (1, 2, 3):
        client.post("/api/inventory/ALBUM-001/adjust", json={
            "platform": "NAVER", "type": "subtract", "quantity": quantity,
        })

    response = client.get("/api/inventory/ALBUM-001/history", params={"page": 1, "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["total_pages"] == 2
    assert [t["delta"] for t in body["items"]] == [3, 2]
    assert body["items"][0]["actor"] == "manual"


def test_history_limit_bounds(client, album):
    assert client.get("/api/inventory/ALBUM-001/history", params={"limit": 0}).status_code == 422
    assert client.get("/api/inventory/ALBUM-001/history", params={"limit": 101}).status_code == 422


"""
2. Mappings
"""


def test_mapping_crud(client):
    created = client.post("/api/mappings", json={"sku": "album-003", "naver_product_id": "1000003"})
    assert created.status_code == 201
    assert created.json()["status"] == "pending"

    updated = client.patch("/api/mappings/ALBUM-003", json={"shopify_variant_id": "4000003"})
    assert updated.json()["status"] == "active"

    assert client.get("/api/mappings/ALBUM-003").json()["shopify_variant_id"] == "4000003"

    deleted = client.delete("/api/mappings/ALBUM-003")
    assert deleted.status_code == 200
    assert deleted.json()["status"] == "inactive"
    assert client.get("/api/mappings/ALBUM-003").status_code == 404


def test_duplicate_mapping_is_422(client, album):
    response = client.post("/api/mappings", json=ALBUM)

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_auto_discover_validates_batch(client):
    assert client.post("/api/mappings/auto-discover", json={"skus": []}).status_code == 422

    response = client.post("/api/mappings/auto-discover", json={"skus": ["ALBUM-404"]})
    assert response.status_code == 200
    assert response.json()["unmatched"][0]["sku"] == "ALBUM-404"


"""
3. Sync jobs
"""


def test_full_sync_job_lifecycle(client, album, naver, shopify):
    naver.stock_levels["ALBUM-001"] = 4

    response = client.post("/api/sync/full")
    assert response.status_code == 202
    job = wait_for_job(client, response.json()["id"])

    assert job["status"] == "completed"
    assert job["processed"] == 1
    assert job["duration_seconds"] is not None
    assert shopify.stock_levels["ALBUM-001"] == 4


def test_sku_sync_unknown_sku_is_404(client):
    assert client.post("/api/sync/sku/NOPE").status_code == 404


def test_sku_sync(client, album, naver, shopify):
    naver.stock_levels["ALBUM-001"] = 2

    job = wait_for_job(client, client.post("/api/sync/sku/album-001").json()["id"])

    assert job["target_sku"] == "ALBUM-001"
    assert shopify.stock_levels["ALBUM-001"] == 2


def test_unknown_job_is_404(client):
    assert client.get("/api/sync/jobs/does-not-exist").status_code == 404
    assert client.post("/api/sync/jobs/does-not-exist/cancel").status_code == 404


def test_order_ingestion_without_naver_is_422(client):
    response = client.post("/api/sync/orders")

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_manual_exchange_rate(client, store):
    response = client.put("/api/sync/exchange-rate", json={"rate": "0.00074"})

    assert response.status_code == 200
    assert response.json()["source"] == "manual"
    assert client.put("/api/sync/exchange-rate", json={"rate": 0}).status_code == 422


def test_exchange_rate_refresh_offline_is_502(client):
    response = client.post("/api/sync/exchange-rate/refresh")

    assert response.status_code == 502
    assert response.json()["code"] == "TRANSIENT_REMOTE_ERROR"


def test_scheduler_status(client):
    body = client.get("/api/sync/scheduler/status").json()
    assert body["status"] == "disabled"


"""
4. Health
"""


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["platforms"] == ["NAVER", "SHOPIFY"]
    assert body["order_ingestion"] is False


def test_store_health(client, album):
    body = client.get("/health/store").json()

    assert body == {"status": "healthy", "store": "InMemorySyncStore", "active_mappings": 1}
