# stocksync/models/product_mapping.py
from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func

from stocksync.database import Base


class ProductMapping(Base):
    """
    Joins one merchant SKU to its Naver and Shopify identifiers.
    Rows are soft-deleted so transaction history keeps its referent.
    """
    __tablename__ = "product_mappings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sku = Column(String(100), nullable=False, unique=True, index=True)

    # --- Naver ---
    naver_product_id = Column(String, nullable=True, index=True)
    naver_channel_product_id = Column(String, nullable=True, index=True)

    # --- Shopify ---
    shopify_product_id = Column(String, nullable=True, index=True)
    shopify_variant_id = Column(String, nullable=True, index=True)
    shopify_inventory_item_id = Column(String, nullable=True)
    shopify_location_id = Column(String, nullable=True)

    product_name = Column(String, nullable=True)
    status = Column(String(32), nullable=False, default="pending", index=True)

    # Policy blocks, validated by stocksync.schemas.mapping
    pricing = Column(JSON, nullable=False, default=dict)
    inventory = Column(JSON, nullable=False, default=dict)
    sync_state = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<ProductMapping(sku='{self.sku}', status='{self.status}')>"
