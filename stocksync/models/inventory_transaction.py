# stocksync/models/inventory_transaction.py
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from sqlalchemy.sql import func

from stocksync.database import Base


class InventoryTransaction(Base):
    """
    Append-only log of every attempted stock change. Never updated.
    """
    __tablename__ = "inventory_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sku = Column(String(100), nullable=False, index=True)
    platform = Column(String(16), nullable=False)
    adjust_type = Column(String(16), nullable=False)

    previous_quantity = Column(Integer, nullable=True)
    delta = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=True)

    reason = Column(Text, nullable=True)
    actor = Column(String(16), nullable=False)
    outcome = Column(String(16), nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    # Set when the change came from order ingestion
    order_id = Column(String, nullable=True)
    order_line_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_inventory_transactions_sku_created", "sku", "created_at"),
        Index("ix_inventory_transactions_order", "order_id", "order_line_id"),
    )

    def __repr__(self):
        return (f"<InventoryTransaction(sku='{self.sku}', platform='{self.platform}', "
                f"{self.previous_quantity}->{self.new_quantity}, outcome='{self.outcome}')>")
