# stocksync/models/order_acknowledgement.py
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text
from sqlalchemy.sql import func

from stocksync.database import Base


class OrderAcknowledgement(Base):
    """
    Marks a Naver order as handled so overlapping ingestion windows
    never decrement stock twice.
    """
    __tablename__ = "order_acknowledgements"

    order_id = Column(String, primary_key=True)
    status = Column(String(16), nullable=False, index=True)  # applied, excluded, partial
    applied_line_ids = Column(JSON, nullable=False, default=list)
    skipped_line_ids = Column(JSON, nullable=False, default=list)
    line_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<OrderAcknowledgement(order_id='{self.order_id}', status='{self.status}')>"
