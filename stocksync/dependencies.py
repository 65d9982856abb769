from fastapi import Request

from stocksync.integrations.setup import SyncEngine
from stocksync.services.mapping_service import MappingService
from stocksync.services.inventory_reconciler import InventoryReconciler
from stocksync.services.sync_scheduler import SyncScheduler


def get_engine(request: Request) -> SyncEngine:
    """Dependency returning the engine built in the app lifespan."""
    return request.app.state.engine


def get_reconciler(request: Request) -> InventoryReconciler:
    return get_engine(request).reconciler


def get_scheduler(request: Request) -> SyncScheduler:
    return get_engine(request).scheduler


def get_mapping_service(request: Request) -> MappingService:
    return get_engine(request).mappings
