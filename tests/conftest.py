# tests/conftest.py
import httpx
import pytest

from stocksync.core.config import Settings
from stocksync.core.enums import PlatformName
from stocksync.services.events import EventBus
from stocksync.services.inventory_reconciler import InventoryReconciler
from stocksync.services.locks import SkuLockManager
from stocksync.services.retry import RetryPolicy
from stocksync.services.store.memory import InMemorySyncStore
from tests.mocks import MockData
from tests.mocks.mock_platform import MockPlatform


async def no_sleep(_seconds):
    return None


@pytest.fixture
def settings():
    """Provide test settings that never touch the environment or network"""
    return Settings(
        _env_file=None,
        DATABASE_URL="",
        NAVER_CLIENT_ID="",
        NAVER_CLIENT_SECRET="",
        SHOPIFY_SHOP_URL=None,
        SHOPIFY_ADMIN_API_ACCESS_TOKEN=None,
        SYNC_SCHEDULE_ENABLED=False,
        EXCHANGE_RATE_FALLBACK=0.00075,
        RETRY_BASE_DELAY=0.0,
        RETRY_JITTER=0.0,
    )


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=0, sleep=no_sleep)


@pytest.fixture
def store():
    return InMemorySyncStore()


@pytest.fixture
def naver():
    return MockPlatform(PlatformName.NAVER)


@pytest.fixture
def shopify():
    return MockPlatform(PlatformName.SHOPIFY)


@pytest.fixture
def platforms(naver, shopify):
    return {PlatformName.NAVER: naver, PlatformName.SHOPIFY: shopify}


@pytest.fixture
def locks():
    return SkuLockManager()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def reconciler(store, platforms, locks, event_bus):
    return InventoryReconciler(store, platforms, locks=locks, event_bus=event_bus)


@pytest.fixture
async def album(store, naver, shopify):
    """ALBUM-001 mapped on both platforms: Naver 5, Shopify 7"""
    mapping = await store.upsert_mapping(MockData.mapping("ALBUM-001"))
    naver.stock_levels["ALBUM-001"] = 5
    shopify.stock_levels["ALBUM-001"] = 7
    return mapping


@pytest.fixture
def offline_http_client():
    """An httpx client whose every request fails with a connection error"""
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
