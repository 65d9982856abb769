# stocksync/services/inventory_reconciler.py
"""
Applies a stock adjustment for one SKU to one or both platforms.

Per platform: read the remote quantity, compute the new one, write it back,
and append an InventoryTransaction whatever the outcome. The read-then-write
runs under a (sku, platform) lock so two adjustments for the same pair never
interleave. Neither platform offers compare-and-swap, so a change made
directly on the platform between our read and write is overwritten.

Platforms are independent: a failure on one never stops the other, and the
caller gets one outcome per platform.
"""
import asyncio
import logging
from typing import Dict, Mapping, Optional, Union

from stocksync.core.enums import (
    Actor,
    AdjustType,
    PlatformName,
    PlatformScope,
    TransactionOutcome,
)
from stocksync.core.exceptions import (
    DatabaseError,
    MappingNotFound,
    PlatformAPIError,
    SyncEngineError,
    ValidationError,
)
from stocksync.core.utils import normalize_sku, pagination
from stocksync.integrations.base import PlatformInterface
from stocksync.schemas import (
    AdjustmentResult,
    InventoryTransaction,
    PlatformOutcome,
    ProductMapping,
    TransactionPage,
)
from stocksync.services import events
from stocksync.services.events import EventBus
from stocksync.services.locks import SkuLockManager
from stocksync.services.store.base import SyncStore

logger = logging.getLogger(__name__)

Amounts = Union[int, Mapping[PlatformName, int]]

MAX_HISTORY_LIMIT = 100


def compute_new_quantity(current: int, delta: int, adjust_type: AdjustType) -> int:
    """
    set -> delta, add -> current + delta, subtract -> max(0, current - delta).
    """
    adjust_type = AdjustType(adjust_type)
    if adjust_type == AdjustType.SET:
        return delta
    if adjust_type == AdjustType.ADD:
        return current + delta
    return max(0, current - delta)


def _validate_amount(value, platform: PlatformName) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Quantity for {platform.value} must be an integer", platform=platform.value)
    if value < 0:
        raise ValidationError(f"Quantity for {platform.value} must not be negative", platform=platform.value)
    return value


class InventoryReconciler:

    def __init__(
        self,
        store: SyncStore,
        platforms: Mapping[PlatformName, PlatformInterface],
        locks: Optional[SkuLockManager] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.platforms = dict(platforms)
        self.locks = locks or SkuLockManager()
        self.event_bus = event_bus or EventBus()

    def _resolve_amounts(self, scope: PlatformScope, amounts: Amounts) -> Dict[PlatformName, int]:
        targets = scope.platforms()
        if isinstance(amounts, Mapping):
            resolved = {}
            for platform in targets:
                key = platform if platform in amounts else platform.value
                if key not in amounts:
                    raise ValidationError(f"No quantity given for {platform.value}", platform=platform.value)
                resolved[platform] = _validate_amount(amounts[key], platform)
            return resolved
        return {platform: _validate_amount(amounts, platform) for platform in targets}

    async def adjust(
        self,
        sku: str,
        scope: Union[PlatformScope, str],
        adjust_type: Union[AdjustType, str],
        amounts: Amounts,
        reason: Optional[str] = None,
        actor: Union[Actor, str] = Actor.MANUAL,
        order_id: Optional[str] = None,
        order_line_id: Optional[str] = None,
    ) -> AdjustmentResult:
        """
        Args:
            sku: merchant SKU
            scope: NAVER, SHOPIFY or BOTH
            adjust_type: set, add or subtract
            amounts: one quantity for every targeted platform, or a per-platform dict
            reason: free text stored on the transaction
            actor: system, manual or webhook

        Raises:
            ValidationError: malformed input, nothing attempted
            MappingNotFound: no mapping for the SKU at all
        """
        try:
            sku = normalize_sku(sku)
            scope = PlatformScope(scope)
            adjust_type = AdjustType(adjust_type)
            actor = Actor(actor)
        except ValueError as e:
            raise ValidationError(str(e), sku=str(sku)) from e

        resolved = self._resolve_amounts(scope, amounts)

        mapping = await self.store.get_mapping(sku)
        if mapping is None:
            raise MappingNotFound(f"No product mapping for SKU {sku}", sku=sku)

        logger.info(f"Adjusting {sku} on {scope.value}: {adjust_type.value} {resolved} ({reason or 'no reason'})")

        platforms = list(resolved)
        outcomes = await asyncio.gather(*(
            self._adjust_platform(
                mapping, platform, adjust_type, resolved[platform], reason, actor, order_id, order_line_id
            )
            for platform in platforms
        ))
        result = AdjustmentResult(
            sku=sku,
            adjust_type=adjust_type,
            reason=reason,
            outcomes=dict(zip(platforms, outcomes)),
        )

        try:
            await self._record_on_mapping(sku, result)
        except DatabaseError as e:
            logger.error(f"Could not record adjustment state on mapping {sku}: {e}")

        self.event_bus.emit(
            events.INVENTORY_ADJUSTED,
            sku=sku,
            status=result.status.value,
            actor=actor.value,
            results={p.value: o.model_dump(mode="json") for p, o in result.outcomes.items()},
        )
        if result.failed_platforms:
            logger.warning(
                f"Adjustment for {sku} finished {result.status.value}; failed on "
                f"{[p.value for p in result.failed_platforms]}"
            )
        return result

    async def _adjust_platform(
        self,
        mapping: ProductMapping,
        platform: PlatformName,
        adjust_type: AdjustType,
        delta: int,
        reason: Optional[str],
        actor: Actor,
        order_id: Optional[str],
        order_line_id: Optional[str],
    ) -> PlatformOutcome:
        previous = None
        new = None
        error: Optional[SyncEngineError] = None

        async with self.locks.lock(mapping.sku, platform):
            try:
                adapter = self.platforms.get(platform)
                if adapter is None:
                    raise PlatformAPIError(f"{platform.value} is not configured", platform=platform.value)
                if not mapping.has_reference(platform):
                    raise MappingNotFound(
                        f"No {platform.value} reference for SKU {mapping.sku}",
                        platform=platform.value,
                        sku=mapping.sku,
                    )
                previous = await adapter.get_stock(mapping)
                new = compute_new_quantity(previous, delta, adjust_type)
                await adapter.set_stock(mapping, new)
            except SyncEngineError as e:
                error = e
            except Exception as e:
                logger.exception(f"Unexpected error adjusting {mapping.sku} on {platform.value}")
                error = PlatformAPIError(str(e), platform=platform.value, sku=mapping.sku)

            if error is not None:
                logger.error(f"Adjustment of {mapping.sku} on {platform.value} failed ({error.code}): {error}")
                new = previous

            history_error = await self._append_transaction(InventoryTransaction(
                sku=mapping.sku,
                platform=platform,
                adjust_type=adjust_type,
                previous_quantity=previous,
                delta=delta,
                new_quantity=new,
                reason=reason,
                actor=actor,
                outcome=TransactionOutcome.ERROR if error else TransactionOutcome.SUCCESS,
                error_message=str(error) if error else None,
                order_id=order_id,
                order_line_id=order_line_id,
            ))

        if error is not None:
            return PlatformOutcome(
                platform=platform,
                success=False,
                previous=previous,
                new=previous,
                delta=delta,
                error=str(error),
                error_code=error.code,
                history_error=history_error,
            )
        return PlatformOutcome(
            platform=platform, success=True, previous=previous, new=new, delta=delta, history_error=history_error
        )

    async def _append_transaction(self, transaction: InventoryTransaction) -> Optional[str]:
        """Store one transaction row; a storage failure is returned, not raised."""
        try:
            await self.store.append_transaction(transaction)
        except DatabaseError as e:
            logger.error(
                f"Could not record {transaction.platform.value} transaction for {transaction.sku} "
                f"(outcome={transaction.outcome.value}): {e}"
            )
            return str(e)
        return None

    async def _record_on_mapping(self, sku: str, result: AdjustmentResult) -> None:
        # Re-read so concurrent edits to other fields are not clobbered; last write wins
        mapping = await self.store.get_mapping(sku)
        if mapping is None:
            return
        for platform, outcome in result.outcomes.items():
            if outcome.success:
                mapping.stock_for(platform).available = outcome.new
        if result.failed_platforms:
            errors = "; ".join(
                f"{p.value}: {result.outcomes[p].error}" for p in result.failed_platforms
            )
            mapping.mark_error("inventory", errors)
        else:
            mapping.mark_synced("inventory")
        await self.store.upsert_mapping(mapping)

    async def get_transaction_history(self, sku: str, page: int = 1, limit: int = 20) -> TransactionPage:
        try:
            sku = normalize_sku(sku)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if page < 1:
            raise ValidationError("page must be at least 1")
        if not 1 <= limit <= MAX_HISTORY_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")

        items = await self.store.list_transactions(sku, page=page, limit=limit)
        total = await self.store.count_transactions(sku=sku)
        return TransactionPage(sku=sku, items=items, **pagination(page, limit, total))
