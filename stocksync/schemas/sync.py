"""
Job, order acknowledgement, audit log and exchange rate schemas.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from stocksync.core.enums import (
    ItemStatus,
    LogLevel,
    OrderAckStatus,
    SyncJobStatus,
    SyncJobType,
)
from stocksync.core.utils import ensure_aware, utcnow
from stocksync.schemas.base import BaseSchema

MAX_JOB_ERRORS = 100


class ItemResult(BaseModel):
    """Outcome of one SKU inside a job."""
    sku: str
    status: ItemStatus
    message: Optional[str] = None
    error_code: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class JobStateError(Exception):
    """Illegal SyncJob state transition."""
    pass


class SyncJob(BaseSchema):
    """
    One scheduler run.

    pending -> running -> completed | failed | cancelled. A job that finishes
    its sweep is ``completed`` even when individual items failed; the counters
    tell the rest.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_type: SyncJobType
    status: SyncJobStatus = SyncJobStatus.PENDING
    target_sku: Optional[str] = None
    triggered_by: str = "manual"

    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0

    error_message: Optional[str] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)
    cancel_requested: bool = False

    @field_validator("created_at", "started_at", "completed_at", mode="after")
    @classmethod
    def _aware(cls, v):
        return ensure_aware(v)

    def _transition(self, allowed, target: SyncJobStatus):
        if self.status not in allowed:
            raise JobStateError(f"Cannot move job {self.id} from {self.status.value} to {target.value}")
        self.status = target

    def start(self):
        self._transition({SyncJobStatus.PENDING}, SyncJobStatus.RUNNING)
        self.started_at = utcnow()

    def complete(self):
        self._transition({SyncJobStatus.RUNNING}, SyncJobStatus.COMPLETED)
        self.completed_at = utcnow()

    def fail(self, message: str):
        self._transition({SyncJobStatus.PENDING, SyncJobStatus.RUNNING}, SyncJobStatus.FAILED)
        self.error_message = message
        self.completed_at = utcnow()

    def cancel(self):
        self._transition({SyncJobStatus.PENDING, SyncJobStatus.RUNNING}, SyncJobStatus.CANCELLED)
        self.completed_at = utcnow()

    def record(self, item: ItemResult):
        self.processed += 1
        if item.status == ItemStatus.SUCCESS:
            self.success += 1
        elif item.status == ItemStatus.FAILED:
            self.failed += 1
            if len(self.errors) < MAX_JOB_ERRORS:
                self.errors.append({
                    "sku": item.sku,
                    "code": item.error_code,
                    "message": item.message,
                })
        else:
            self.skipped += 1

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class OrderLine(BaseModel):
    """One decrement event derived from a Naver product order."""
    order_id: str
    line_id: str
    sku: Optional[str] = None
    quantity: int = Field(0, ge=0)
    status: Optional[str] = None


class OrderAcknowledgement(BaseSchema):
    order_id: str
    status: OrderAckStatus
    applied_line_ids: List[str] = Field(default_factory=list)
    skipped_line_ids: List[str] = Field(default_factory=list)
    line_count: int = 0
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _aware(cls, v):
        return ensure_aware(v)

    @property
    def is_settled(self) -> bool:
        return self.status in (OrderAckStatus.APPLIED, OrderAckStatus.EXCLUDED)


class SystemLogEntry(BaseSchema):
    """Structured audit entry written for every scheduled run."""
    id: Optional[int] = None
    level: LogLevel = LogLevel.INFO
    category: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", mode="after")
    @classmethod
    def _aware(cls, v):
        return ensure_aware(v)


class ExchangeRate(BaseSchema):
    id: Optional[int] = None
    base_currency: str
    target_currency: str
    rate: Decimal
    source: str = "api"
    fetched_at: datetime = Field(default_factory=utcnow)

    @field_validator("fetched_at", mode="after")
    @classmethod
    def _aware(cls, v):
        return ensure_aware(v)
