# stocksync/routes/inventory.py
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from stocksync.core.exceptions import MappingNotFound
from stocksync.dependencies import get_reconciler
from stocksync.schemas import AdjustInventoryRequest
from stocksync.services.inventory_reconciler import MAX_HISTORY_LIMIT, InventoryReconciler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.post("/{sku}/adjust")
async def adjust_inventory(
    sku: str,
    body: AdjustInventoryRequest,
    reconciler: InventoryReconciler = Depends(get_reconciler),
):
    """
    Adjust stock for one SKU on one or both platforms.

    200 when every targeted platform succeeded, 207 when only some did,
    502 when none did. A SKU whose every targeted platform lacks a reference
    answers 404.
    """
    result = await reconciler.adjust(
        sku,
        body.platform,
        body.adjust_type,
        body.amounts(),
        reason=body.reason,
    )

    failed = [result.outcomes[p] for p in result.failed_platforms]
    if failed and len(failed) == len(result.outcomes) and all(
        o.error_code == MappingNotFound.code for o in failed
    ):
        raise MappingNotFound(
            f"No platform reference for SKU {result.sku}: " + "; ".join(o.error or "" for o in failed),
            sku=result.sku,
        )

    return JSONResponse(status_code=result.http_status, content=result.to_response())


@router.get("/{sku}/history")
async def inventory_history(
    sku: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_HISTORY_LIMIT),
    reconciler: InventoryReconciler = Depends(get_reconciler),
):
    history = await reconciler.get_transaction_history(sku, page=page, limit=limit)
    return history.model_dump(mode="json")
