# stocksync/services/sync_scheduler.py
"""
Job lifecycle for the sync engine.

Manual triggers and cron triggers both go through the same entry points.
A trigger returns the SyncJob handle at once and the work runs as an
asyncio task:

    pending -> running -> completed | failed | cancelled

``completed`` means the sweep finished; per-item failures only show in the
counters. ``failed`` is reserved for job-scoped problems such as credential
acquisition failing. Cancellation is honoured between SKUs.

Exclusive job types (full, price, order) allow one running job each; a
targeted SKU sync is exclusive per SKU. A conflicting trigger is rejected,
not queued.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from stocksync.core.config import Settings
from stocksync.core.enums import ItemStatus, LogLevel, SyncJobStatus, SyncJobType
from stocksync.core.exceptions import (
    AuthFailure,
    JobConflictError,
    JobNotFoundError,
    MappingNotFound,
    SyncEngineError,
    ValidationError,
)
from stocksync.core.utils import normalize_sku, utcnow
from stocksync.schemas import ItemResult, SyncJob, SystemLogEntry, TransactionPage
from stocksync.services import events
from stocksync.services.events import EventBus
from stocksync.services.exchange_rate import ExchangeRateService
from stocksync.services.inventory_reconciler import InventoryReconciler
from stocksync.services.inventory_sync import InventorySynchronizer
from stocksync.services.naver.auth import NaverCredentialCache
from stocksync.services.order_ingestion import OrderIngestionPipeline
from stocksync.services.price_sync import PriceReconciler
from stocksync.services.store.base import SyncStore

logger = logging.getLogger(__name__)

AUDIT_CATEGORY = "scheduler"

_ORDER_OUTCOME_STATUS = {
    "applied": ItemStatus.SUCCESS,
    "excluded": ItemStatus.SKIPPED,
    "duplicate": ItemStatus.SKIPPED,
    "partial": ItemStatus.FAILED,
}


def _combine(sku: str, inventory: ItemResult, price: ItemResult) -> ItemResult:
    statuses = (inventory.status, price.status)
    if ItemStatus.FAILED in statuses:
        status = ItemStatus.FAILED
    elif ItemStatus.SUCCESS in statuses:
        status = ItemStatus.SUCCESS
    else:
        status = ItemStatus.SKIPPED
    failed = next((r for r in (inventory, price) if r.status == ItemStatus.FAILED), None)
    return ItemResult(
        sku=sku,
        status=status,
        message=failed.message if failed else None,
        error_code=failed.error_code if failed else None,
        details={
            "inventory": inventory.model_dump(mode="json", exclude={"sku"}),
            "price": price.model_dump(mode="json", exclude={"sku"}),
        },
    )


class SyncScheduler:

    def __init__(
        self,
        store: SyncStore,
        reconciler: InventoryReconciler,
        synchronizer: InventorySynchronizer,
        price_reconciler: PriceReconciler,
        ingestion: Optional[OrderIngestionPipeline],
        exchange_rates: ExchangeRateService,
        credentials: Optional[NaverCredentialCache] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.reconciler = reconciler
        self.synchronizer = synchronizer
        self.price_reconciler = price_reconciler
        self.ingestion = ingestion
        self.exchange_rates = exchange_rates
        self.credentials = credentials
        self.event_bus = event_bus or EventBus()
        self.settings = settings or Settings()

        self.max_concurrency = max(1, self.settings.SYNC_MAX_CONCURRENCY)

        self._active: Dict[str, SyncJob] = {}       # exclusivity key -> job
        self._jobs: Dict[str, SyncJob] = {}         # job id -> live job
        self._tasks: Dict[str, asyncio.Task] = {}   # job id -> task
        self._cron: Optional[AsyncIOScheduler] = None

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def trigger_full_sync(self, triggered_by: str = "manual") -> SyncJob:
        job = SyncJob(job_type=SyncJobType.FULL, triggered_by=triggered_by)
        return await self._launch(job, SyncJobType.FULL.value, self._run_full_sync)

    async def trigger_sku_sync(self, sku: str, triggered_by: str = "manual") -> SyncJob:
        try:
            sku = normalize_sku(sku)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if await self.store.get_mapping(sku) is None:
            raise MappingNotFound(f"No product mapping for SKU {sku}", sku=sku)
        job = SyncJob(job_type=SyncJobType.INVENTORY, target_sku=sku, triggered_by=triggered_by)
        return await self._launch(job, f"{SyncJobType.INVENTORY.value}:{sku}", self._run_sku_sync)

    async def trigger_price_sync(self, triggered_by: str = "manual") -> SyncJob:
        job = SyncJob(job_type=SyncJobType.PRICE, triggered_by=triggered_by)
        return await self._launch(job, SyncJobType.PRICE.value, self._run_price_sync)

    async def trigger_order_ingestion(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        triggered_by: str = "manual",
    ) -> SyncJob:
        if self.ingestion is None:
            raise ValidationError("Order ingestion is not configured")
        job = SyncJob(job_type=SyncJobType.ORDER, triggered_by=triggered_by)
        if since:
            job.details["requested_from"] = since.isoformat()
        if until:
            job.details["requested_to"] = until.isoformat()

        async def runner(j):
            await self._run_order_ingestion(j, since, until)

        return await self._launch(job, SyncJobType.ORDER.value, runner)

    # ------------------------------------------------------------------
    # Job queries
    # ------------------------------------------------------------------

    async def get_job_status(self, job_id: str) -> SyncJob:
        live = self._jobs.get(job_id)
        if live is not None:
            return live.model_copy(deep=True)
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    async def cancel_job(self, job_id: str) -> SyncJob:
        live = self._jobs.get(job_id)
        if live is None:
            job = await self.store.get_job(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            return job
        if not live.status.is_terminal:
            live.cancel_requested = True
            logger.info(f"Cancellation requested for job {job_id}")
            await self.store.save_job(live)
        return live.model_copy(deep=True)

    async def wait_for(self, job_id: str) -> SyncJob:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.get_job_status(job_id)

    def running_jobs(self) -> List[SyncJob]:
        return [j.model_copy(deep=True) for j in self._active.values()]

    async def get_transaction_history(self, sku: str, page: int = 1, limit: int = 20) -> TransactionPage:
        return await self.reconciler.get_transaction_history(sku, page=page, limit=limit)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _launch(self, job: SyncJob, key: str, runner: Callable[[SyncJob], Awaitable[None]]) -> SyncJob:
        current = self._active.get(key)
        if current is not None:
            raise JobConflictError(
                f"A {job.job_type.value} job is already running ({current.id})",
                sku=job.target_sku,
            )
        self._active[key] = job
        self._jobs[job.id] = job
        try:
            await self.store.save_job(job)
        except Exception:
            self._active.pop(key, None)
            self._jobs.pop(job.id, None)
            raise

        task = asyncio.create_task(self._execute(job, key, runner), name=f"sync-job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda t, job_id=job.id: self._tasks.pop(job_id, None))
        logger.info(f"Job {job.id} ({job.job_type.value}) accepted, triggered by {job.triggered_by}")
        return job.model_copy(deep=True)

    async def _execute(self, job: SyncJob, key: str, runner):
        try:
            job.start()
            await self.store.save_job(job)
            self.event_bus.emit(events.JOB_STARTED, job_id=job.id, job_type=job.job_type.value)

            await self._preflight()
            await runner(job)

            if job.status == SyncJobStatus.RUNNING:
                if job.cancel_requested:
                    job.cancel()
                else:
                    job.complete()
        except AuthFailure as e:
            logger.error(f"Job {job.id} failed: credential acquisition failed: {e}")
            job.fail(f"{e.code}: {e}")
        except SyncEngineError as e:
            logger.error(f"Job {job.id} failed ({e.code}): {e}")
            job.fail(f"{e.code}: {e}")
        except Exception as e:
            logger.exception(f"Job {job.id} crashed")
            job.fail(str(e))
        finally:
            try:
                await self.store.save_job(job)
            finally:
                self._active.pop(key, None)
                self._jobs.pop(job.id, None)

        event_name = {
            SyncJobStatus.COMPLETED: events.JOB_COMPLETED,
            SyncJobStatus.FAILED: events.JOB_FAILED,
            SyncJobStatus.CANCELLED: events.JOB_CANCELLED,
        }[job.status]
        self.event_bus.emit(
            event_name,
            job_id=job.id,
            job_type=job.job_type.value,
            processed=job.processed,
            success=job.success,
            failed=job.failed,
            skipped=job.skipped,
            error=job.error_message,
        )
        logger.info(
            f"Job {job.id} ({job.job_type.value}) {job.status.value}: processed={job.processed} "
            f"success={job.success} failed={job.failed} skipped={job.skipped}"
        )

    async def _preflight(self):
        """Fail the whole job up front when Naver credentials cannot be obtained."""
        if self.credentials is not None:
            await self.credentials.get_token()

    async def _record(self, job: SyncJob, result: ItemResult):
        job.record(result)
        await self.store.save_job(job)
        self.event_bus.emit(
            events.ITEM_PROCESSED,
            job_id=job.id,
            sku=result.sku,
            status=result.status.value,
            error_code=result.error_code,
        )

    async def _sweep(self, job: SyncJob, skus: List[str], process: Callable[[str], Awaitable[ItemResult]]):
        """Run ``process`` per SKU with bounded concurrency, honouring cancel and auth halts."""
        job.total = len(skus)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        halted: List[ItemResult] = []

        async def one(sku: str):
            async with semaphore:
                # Checkpoint: between SKUs only
                if job.cancel_requested or halted:
                    return
                result = await self._guarded(sku, process)
                await self._record(job, result)
                if result.error_code == AuthFailure.code:
                    halted.append(result)

        await asyncio.gather(*(one(sku) for sku in skus))

        if halted:
            job.fail(f"{AuthFailure.code}: {halted[0].message}")

    async def _guarded(self, sku: str, process) -> ItemResult:
        try:
            return await process(sku)
        except MappingNotFound as e:
            return ItemResult(sku=sku, status=ItemStatus.SKIPPED, message=str(e), error_code=e.code)
        except SyncEngineError as e:
            return ItemResult(sku=sku, status=ItemStatus.FAILED, message=str(e), error_code=e.code)
        except Exception as e:
            logger.exception(f"Unexpected error while syncing {sku}")
            return ItemResult(sku=sku, status=ItemStatus.FAILED, message=str(e), error_code="UNEXPECTED_ERROR")

    async def _current_rate(self):
        try:
            return await self.exchange_rates.current_rate()
        except SyncEngineError as e:
            logger.error(f"No exchange rate available for this run: {e}")
            return None

    async def _run_full_sync(self, job: SyncJob):
        mappings = await self.store.list_active_mappings()
        rate = await self._current_rate()

        async def process(sku):
            inventory = await self.synchronizer.sync_sku(sku)
            if inventory.error_code == AuthFailure.code:
                return inventory
            price = await self.price_reconciler.sync_price(sku, rate=rate)
            return _combine(sku, inventory, price)

        await self._sweep(job, [m.sku for m in mappings], process)

    async def _run_sku_sync(self, job: SyncJob):
        await self._sweep(job, [job.target_sku], self.synchronizer.sync_sku)

    async def _run_price_sync(self, job: SyncJob):
        mappings = await self.store.list_active_mappings()
        rate = await self._current_rate()
        job.details["rate"] = str(rate) if rate is not None else None

        async def process(sku):
            return await self.price_reconciler.sync_price(sku, rate=rate)

        await self._sweep(job, [m.sku for m in mappings], process)

    async def _order_window_start(self, now: datetime) -> datetime:
        overlap = timedelta(minutes=self.settings.ORDER_INGESTION_OVERLAP_MINUTES)
        last = await self.store.find_last_job(SyncJobType.ORDER, SyncJobStatus.COMPLETED)
        window_to = (last.details or {}).get("window_to") if last else None
        if window_to:
            return datetime.fromisoformat(window_to) - overlap
        return now - timedelta(minutes=self.settings.ORDER_INGESTION_INTERVAL_MINUTES) - overlap

    async def _run_order_ingestion(self, job: SyncJob, since: Optional[datetime], until: Optional[datetime]):
        until = until or utcnow()
        since = since or await self._order_window_start(until)
        job.details.update({"window_from": since.isoformat(), "window_to": until.isoformat()})

        report = await self.ingestion.ingest(since, until, should_stop=lambda: job.cancel_requested)
        job.total = report.orders_seen
        job.details["pages"] = report.pages
        for outcome in report.orders:
            await self._record(job, ItemResult(
                sku=outcome.order_id,
                status=_ORDER_OUTCOME_STATUS.get(outcome.status, ItemStatus.FAILED),
                message="; ".join(outcome.errors) or None,
                details=outcome.model_dump(exclude={"order_id", "errors"}),
            ))

    # ------------------------------------------------------------------
    # Maintenance runs (audit entry only, no SyncJob)
    # ------------------------------------------------------------------

    async def audit(self, level: LogLevel, message: str, **details):
        try:
            await self.store.append_log(SystemLogEntry(
                level=level, category=AUDIT_CATEGORY, message=message, details=details,
            ))
        except Exception as e:
            logger.error(f"Could not write audit entry '{message}': {e}")

    async def refresh_exchange_rate(self) -> dict:
        try:
            rate = await self.exchange_rates.refresh()
        except SyncEngineError as e:
            await self.audit(LogLevel.ERROR, "Exchange rate refresh failed", code=e.code, error=str(e))
            raise
        result = {
            "base": rate.base_currency,
            "target": rate.target_currency,
            "rate": str(rate.rate),
            "fetched_at": rate.fetched_at.isoformat(),
        }
        await self.audit(LogLevel.INFO, "Exchange rate refreshed", **result)
        return result

    async def purge_logs(self) -> dict:
        retention_days = self.settings.LOG_RETENTION_DAYS
        levels = self.settings.LOG_RETENTION_LEVELS
        cutoff = utcnow() - timedelta(days=retention_days)
        deleted = await self.store.purge_logs(cutoff, levels)
        result = {"deleted": deleted, "cutoff": cutoff.isoformat(), "levels": list(levels)}
        logger.info(f"Log retention removed {deleted} entries older than {retention_days} days")
        await self.audit(LogLevel.INFO, "Log retention completed", **result)
        return result

    # ------------------------------------------------------------------
    # Cron
    # ------------------------------------------------------------------

    async def _scheduled_job(self, name: str, trigger: Callable[[], Awaitable[SyncJob]]):
        try:
            job = await trigger()
            finished = await self.wait_for(job.id)
            level = LogLevel.INFO if finished.status == SyncJobStatus.COMPLETED else LogLevel.ERROR
            await self.audit(
                level,
                f"Scheduled {name} {finished.status.value}",
                job_id=finished.id,
                processed=finished.processed,
                success=finished.success,
                failed=finished.failed,
                skipped=finished.skipped,
                error=finished.error_message,
            )
        except JobConflictError as e:
            await self.audit(LogLevel.WARNING, f"Scheduled {name} skipped", reason=str(e))
        except Exception as e:
            logger.exception(f"Scheduled {name} crashed")
            await self.audit(LogLevel.ERROR, f"Scheduled {name} crashed", error=str(e))

    async def scheduled_full_sync(self):
        await self._scheduled_job("full sync", lambda: self.trigger_full_sync(triggered_by="schedule"))

    async def scheduled_order_ingestion(self):
        await self._scheduled_job("order ingestion", lambda: self.trigger_order_ingestion(triggered_by="schedule"))

    async def scheduled_exchange_rate(self):
        try:
            await self.refresh_exchange_rate()
        except SyncEngineError as e:
            logger.error(f"Scheduled exchange rate refresh failed: {e}")

    async def scheduled_log_retention(self):
        try:
            await self.purge_logs()
        except Exception as e:
            logger.exception("Scheduled log retention crashed")
            await self.audit(LogLevel.ERROR, "Log retention crashed", error=str(e))

    @staticmethod
    def _job_listener(event):
        if event.exception:
            logger.error(f"Job {event.job_id} crashed: {event.exception}")
        else:
            logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")

    def create_cron(self) -> AsyncIOScheduler:
        if self._cron is not None:
            return self._cron

        cron = AsyncIOScheduler()
        cron.add_listener(self._job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

        schedule = [
            ("full_sync", "Full Sync", self.scheduled_full_sync, self.settings.CRON_FULL_SYNC),
            ("order_ingestion", "Order Ingestion", self.scheduled_order_ingestion, self.settings.CRON_ORDER_INGESTION),
            ("exchange_rate", "Exchange Rate Refresh", self.scheduled_exchange_rate, self.settings.CRON_EXCHANGE_RATE),
            ("log_retention", "Log Retention", self.scheduled_log_retention, self.settings.CRON_LOG_RETENTION),
        ]
        for job_id, name, func, crontab in schedule:
            if job_id == "order_ingestion" and self.ingestion is None:
                continue
            cron.add_job(
                func,
                CronTrigger.from_crontab(crontab),
                id=job_id,
                name=name,
                replace_existing=True,
                max_instances=1,
                misfire_grace_time=3600,
            )
            logger.info(f"Scheduled {name} with schedule: {crontab}")

        self._cron = cron
        return cron

    def start(self):
        if not self.settings.SYNC_SCHEDULE_ENABLED:
            logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULE_ENABLED=true to enable")
            return
        cron = self.create_cron()
        if not cron.running:
            cron.start()
            logger.info(f"Scheduler started with {len(cron.get_jobs())} jobs")

    async def shutdown(self):
        if self._cron and self._cron.running:
            self._cron.shutdown(wait=False)
            logger.info("Scheduler stopped")
        for job in self._jobs.values():
            job.cancel_requested = True
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def status(self) -> dict:
        jobs_info = []
        if self._cron is not None:
            for job in self._cron.get_jobs():
                jobs_info.append({
                    "id": job.id,
                    "name": job.name,
                    "next_run": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
                    "trigger": str(job.trigger),
                })
        if self._cron is None:
            state = "disabled" if not self.settings.SYNC_SCHEDULE_ENABLED else "not_initialized"
        else:
            state = "running" if self._cron.running else "stopped"
        return {
            "status": state,
            "jobs": jobs_info,
            "running_jobs": [
                {"id": j.id, "type": j.job_type.value, "target_sku": j.target_sku}
                for j in self._active.values()
            ],
        }
