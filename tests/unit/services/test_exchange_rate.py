from datetime import timedelta
from decimal import Decimal

import httpx
import pytest

from stocksync.core.exceptions import PlatformAPIError, ValidationError
from stocksync.core.utils import utcnow
from stocksync.schemas import ExchangeRate
from stocksync.services.exchange_rate import ExchangeRateService


def rate_client(status=200, body=None):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status, json=body if body is not None else {"rates": {"USD": 0.00072}})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), calls


def make_service(store, client, retry_policy, fallback=None):
    return ExchangeRateService(
        store, client, "https://rates.test/latest/KRW", fallback_rate=fallback, retry_policy=retry_policy
    )


@pytest.mark.asyncio
async def test_fresh_stored_rate_is_used_without_fetch(store, retry_policy):
    await store.save_exchange_rate(ExchangeRate(base_currency="KRW", target_currency="USD", rate=Decimal("0.0007")))
    client, calls = rate_client()

    assert await make_service(store, client, retry_policy).current_rate() == Decimal("0.0007")
    assert calls == []


@pytest.mark.asyncio
async def test_stale_rate_triggers_refresh(store, retry_policy):
    await store.save_exchange_rate(ExchangeRate(
        base_currency="KRW", target_currency="USD", rate=Decimal("0.0007"),
        fetched_at=utcnow() - timedelta(hours=25),
    ))
    client, calls = rate_client()

    rate = await make_service(store, client, retry_policy).current_rate()

    assert rate == Decimal("0.00072")
    assert len(calls) == 1
    latest = await store.latest_exchange_rate("KRW", "USD")
    assert latest.rate == Decimal("0.00072")
    assert latest.source == "api"


@pytest.mark.asyncio
async def test_stale_rate_used_when_refresh_fails(store, retry_policy):
    await store.save_exchange_rate(ExchangeRate(
        base_currency="KRW", target_currency="USD", rate=Decimal("0.0007"),
        fetched_at=utcnow() - timedelta(days=3),
    ))
    client, calls = rate_client(status=503)

    assert await make_service(store, client, retry_policy).current_rate() == Decimal("0.0007")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_configured_fallback_when_nothing_stored(store, retry_policy, offline_http_client):
    service = make_service(store, offline_http_client, retry_policy, fallback=0.00075)
    assert await service.current_rate() == Decimal("0.00075")


@pytest.mark.asyncio
async def test_no_rate_at_all_raises(store, retry_policy, offline_http_client):
    with pytest.raises(PlatformAPIError):
        await make_service(store, offline_http_client, retry_policy).current_rate()


@pytest.mark.asyncio
async def test_response_without_target_currency(store, retry_policy):
    client, calls = rate_client(body={"rates": {"EUR": 0.0006}})

    with pytest.raises(PlatformAPIError):
        await make_service(store, client, retry_policy).refresh()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_manual_rate(store, retry_policy, offline_http_client):
    service = make_service(store, offline_http_client, retry_policy)

    stored = await service.set_manual_rate("0.00074")

    assert stored.source == "manual"
    assert await service.current_rate() == Decimal("0.00074")
    with pytest.raises(ValidationError):
        await service.set_manual_rate(0)
