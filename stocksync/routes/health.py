from fastapi import APIRouter, Depends

from stocksync.dependencies import get_engine
from stocksync.integrations.setup import SyncEngine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(engine: SyncEngine = Depends(get_engine)):
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "stocksync",
        "platforms": sorted(p.value for p in engine.platforms),
        "order_ingestion": engine.ingestion is not None,
        "scheduler": engine.scheduler.status()["status"],
    }


@router.get("/health/store")
async def store_health(engine: SyncEngine = Depends(get_engine)):
    """Check that the sync store answers"""
    try:
        mappings = await engine.store.list_active_mappings()
        return {
            "status": "healthy",
            "store": type(engine.store).__name__,
            "active_mappings": len(mappings),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "store": type(engine.store).__name__,
            "error": str(e),
        }
