# stocksync/models/exchange_rate.py
from sqlalchemy import Column, Integer, String, DateTime, Numeric
from sqlalchemy.sql import func

from stocksync.database import Base


class ExchangeRate(Base):
    __tablename__ = "exchange_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    base_currency = Column(String(3), nullable=False)
    target_currency = Column(String(3), nullable=False)
    rate = Column(Numeric(18, 8), nullable=False)
    source = Column(String(16), nullable=False, default="api")  # api, manual
    fetched_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ExchangeRate({self.base_currency}->{self.target_currency}={self.rate}, source='{self.source}')>"
