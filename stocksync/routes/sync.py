# stocksync/routes/sync.py
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from stocksync.core.enums import LogLevel
from stocksync.dependencies import get_engine, get_scheduler
from stocksync.integrations.setup import SyncEngine
from stocksync.schemas import SyncJob
from stocksync.services.sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sync", tags=["Synchronization Actions"])


class OrderIngestionRequest(BaseModel):
    since: Optional[datetime] = None
    until: Optional[datetime] = None


class ManualRateRequest(BaseModel):
    rate: Decimal = Field(..., gt=0)


def _job_response(job: SyncJob) -> dict:
    data = job.model_dump(mode="json")
    data["duration_seconds"] = job.duration_seconds
    return data


@router.post("/full", status_code=202)
async def trigger_full_sync(scheduler: SyncScheduler = Depends(get_scheduler)):
    """Inventory then price sync for every active mapping."""
    job = await scheduler.trigger_full_sync()
    return _job_response(job)


@router.post("/sku/{sku}", status_code=202)
async def trigger_sku_sync(sku: str, scheduler: SyncScheduler = Depends(get_scheduler)):
    job = await scheduler.trigger_sku_sync(sku)
    return _job_response(job)


@router.post("/orders", status_code=202)
async def trigger_order_ingestion(
    body: Optional[OrderIngestionRequest] = None,
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    body = body or OrderIngestionRequest()
    job = await scheduler.trigger_order_ingestion(since=body.since, until=body.until)
    return _job_response(job)


@router.post("/prices", status_code=202)
async def trigger_price_sync(scheduler: SyncScheduler = Depends(get_scheduler)):
    job = await scheduler.trigger_price_sync()
    return _job_response(job)


@router.post("/exchange-rate/refresh")
async def refresh_exchange_rate(scheduler: SyncScheduler = Depends(get_scheduler)):
    return await scheduler.refresh_exchange_rate()


@router.put("/exchange-rate")
async def set_exchange_rate(body: ManualRateRequest, engine: SyncEngine = Depends(get_engine)):
    stored = await engine.exchange_rates.set_manual_rate(body.rate)
    await engine.scheduler.audit(
        LogLevel.INFO, "Manual exchange rate set", rate=str(stored.rate), source=stored.source
    )
    return stored.model_dump(mode="json")


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, scheduler: SyncScheduler = Depends(get_scheduler)):
    job = await scheduler.get_job_status(job_id)
    return _job_response(job)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, scheduler: SyncScheduler = Depends(get_scheduler)):
    job = await scheduler.cancel_job(job_id)
    return _job_response(job)


@router.get("/scheduler/status")
async def scheduler_status(scheduler: SyncScheduler = Depends(get_scheduler)):
    return scheduler.status()
