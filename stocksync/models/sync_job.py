# stocksync/models/sync_job.py
from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func

from stocksync.database import Base


class SyncJob(Base):
    """
    One scheduler run (full, inventory, price or order).
    """

    __tablename__ = "sync_jobs"

    id = Column(String(36), primary_key=True)
    job_type = Column(String(32), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="pending", index=True)  # pending, running, completed, failed, cancelled
    target_sku = Column(String(100), nullable=True, index=True)
    triggered_by = Column(String(32), nullable=False, default="manual")

    processed = Column(Integer, nullable=False, default=0)
    success = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    skipped = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)

    error_message = Column(Text, nullable=True)
    errors = Column(JSON, nullable=False, default=list)
    details = Column(JSON, nullable=False, default=dict)
    cancel_requested = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SyncJob(id={self.id}, type={self.job_type}, status={self.status})>"
