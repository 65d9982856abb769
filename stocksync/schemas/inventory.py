"""
Inventory adjustment schemas: requests, per-platform outcomes and the
append-only transaction log.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from stocksync.core.enums import (
    Actor,
    AdjustmentStatus,
    AdjustType,
    PlatformName,
    PlatformScope,
    TransactionOutcome,
)
from stocksync.core.utils import ensure_aware, normalize_sku
from stocksync.schemas.base import BaseSchema


class InventoryTransaction(BaseSchema):
    """Immutable record of one attempted quantity change on one platform."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)

    id: Optional[int] = None
    sku: str
    platform: PlatformName
    adjust_type: AdjustType
    previous_quantity: Optional[int] = None
    delta: int
    new_quantity: Optional[int] = None
    reason: Optional[str] = None
    actor: Actor
    outcome: TransactionOutcome
    error_message: Optional[str] = None
    order_id: Optional[str] = None
    order_line_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="after")
    @classmethod
    def _aware(cls, v):
        return ensure_aware(v)


class AdjustInventoryRequest(BaseSchema):
    """
    Body of a manual adjustment.

    Either ``quantity`` applies to every targeted platform, or the per-platform
    ``naver_quantity`` / ``shopify_quantity`` fields are given.
    """
    platform: PlatformScope = PlatformScope.BOTH
    adjust_type: AdjustType = Field(AdjustType.SET, alias="type")
    quantity: Optional[int] = Field(None, ge=0)
    naver_quantity: Optional[int] = Field(None, ge=0)
    shopify_quantity: Optional[int] = Field(None, ge=0)
    reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def _require_amount(self):
        for platform in self.platform.platforms():
            if self.amount_for(platform) is None:
                raise ValueError(f"quantity is required for {platform.value}")
        return self

    def amount_for(self, platform: PlatformName) -> Optional[int]:
        specific = self.naver_quantity if platform == PlatformName.NAVER else self.shopify_quantity
        return specific if specific is not None else self.quantity

    def amounts(self) -> Dict[PlatformName, int]:
        return {p: self.amount_for(p) for p in self.platform.platforms()}


class PlatformOutcome(BaseSchema):
    platform: PlatformName
    success: bool
    previous: Optional[int] = None
    new: Optional[int] = None
    delta: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    # Set when the remote write went through but its transaction row could not be stored
    history_error: Optional[str] = None


class AdjustmentResult(BaseSchema):
    sku: str
    adjust_type: AdjustType
    reason: Optional[str] = None
    outcomes: Dict[PlatformName, PlatformOutcome] = Field(default_factory=dict)

    @property
    def status(self) -> AdjustmentStatus:
        results = [o.success for o in self.outcomes.values()]
        if results and all(results):
            return AdjustmentStatus.SUCCESS
        if any(results):
            return AdjustmentStatus.PARTIAL
        return AdjustmentStatus.FAILED

    @property
    def http_status(self) -> int:
        return {
            AdjustmentStatus.SUCCESS: 200,
            AdjustmentStatus.PARTIAL: 207,
            AdjustmentStatus.FAILED: 502,
        }[self.status]

    @property
    def failed_platforms(self) -> List[PlatformName]:
        return [p for p, o in self.outcomes.items() if not o.success]

    def to_response(self) -> dict:
        return {
            "sku": self.sku,
            "status": self.status.value,
            "type": self.adjust_type.value,
            "reason": self.reason,
            "results": {
                p.value: o.model_dump(mode="json", exclude={"platform"})
                for p, o in self.outcomes.items()
            },
        }


class TransactionPage(BaseSchema):
    sku: str
    items: List[InventoryTransaction]
    page: int
    limit: int
    total: int
    total_pages: int

    @field_validator("sku", mode="before")
    @classmethod
    def _normalize(cls, v):
        return normalize_sku(v)
