# stocksync/services/order_ingestion.py
"""
Incremental import of paid Naver orders as Shopify stock decrements.

Naver already reduced its own stock when the order was paid, so each order
line becomes a ``subtract`` on Shopify. Runs overlap on purpose (each starts
a little before the previous one ended), so every order is checked against
its acknowledgement record first and only lines not yet handled are applied.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from stocksync.core.enums import (
    Actor,
    AdjustType,
    OrderAckStatus,
    PlatformScope,
    TERMINAL_NEGATIVE_ORDER_STATUSES,
)
from stocksync.core.exceptions import MappingNotFound, SyncEngineError, ValidationError
from stocksync.core.utils import utcnow
from stocksync.schemas import OrderAcknowledgement, OrderLine
from stocksync.services.inventory_reconciler import InventoryReconciler
from stocksync.services.naver.client import NaverCommerceClient
from stocksync.services.store.base import SyncStore

logger = logging.getLogger(__name__)


def extract_order_lines(order: Dict[str, Any]) -> List[OrderLine]:
    """
    Turn one entry of ``lastChangeStatuses`` into decrement lines.

    Entries either carry an ``orderItems`` list or are a single product order
    themselves. The SKU comes from the seller management code.
    """
    order_id = str(order.get("orderId") or order.get("orderNo") or order.get("productOrderId") or "")
    order_status = order.get("orderStatus") or order.get("productOrderStatus")
    items = order.get("orderItems")
    if items is None:
        items = [order]

    lines = []
    for index, item in enumerate(items):
        sku = item.get("sellerManagementCode") or item.get("sellerProductCode")
        lines.append(OrderLine(
            order_id=order_id,
            line_id=str(item.get("productOrderId") or f"{order_id}-{index + 1}"),
            sku=sku.strip().upper() if sku and sku.strip() else None,
            quantity=max(0, int(item.get("quantity") or 0)),
            status=item.get("productOrderStatus") or order_status,
        ))
    return lines


class OrderOutcome(BaseModel):
    order_id: str
    status: str  # applied, excluded, partial, duplicate
    applied_lines: int = 0
    skipped_lines: int = 0
    failed_lines: int = 0
    errors: List[str] = Field(default_factory=list)


class IngestionReport(BaseModel):
    window_from: datetime
    window_to: datetime
    pages: int = 0
    orders_seen: int = 0
    orders: List[OrderOutcome] = Field(default_factory=list)
    stopped_early: bool = False

    def count(self, status: str) -> int:
        return sum(1 for o in self.orders if o.status == status)


class OrderIngestionPipeline:

    def __init__(
        self,
        client: NaverCommerceClient,
        reconciler: InventoryReconciler,
        store: SyncStore,
        page_size: int = 100,
        page_delay: float = 0.5,
        status_filter: Optional[str] = "PAYED",
        acknowledge_remote: bool = False,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.client = client
        self.reconciler = reconciler
        self.store = store
        self.page_size = page_size
        self.page_delay = page_delay
        self.status_filter = status_filter
        self.acknowledge_remote = acknowledge_remote
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, client, reconciler, store):
        return cls(
            client=client,
            reconciler=reconciler,
            store=store,
            page_size=settings.ORDER_PAGE_SIZE,
            page_delay=settings.ORDER_PAGE_DELAY_SECONDS,
            status_filter=settings.ORDER_INGESTION_STATUS,
            acknowledge_remote=settings.NAVER_ACKNOWLEDGE_ORDERS,
        )

    async def fetch_since(
        self,
        since: datetime,
        until: Optional[datetime] = None,
        status: Optional[str] = None,
        report: Optional[IngestionReport] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Lazily yield orders changed in ``[since, until)``.

        A page shorter than the page size is the last one. Calling again
        restarts from page 1.
        """
        until = until or utcnow()
        if since >= until:
            raise ValidationError(f"Empty ingestion window: {since} >= {until}")
        status = status or self.status_filter

        page = 1
        while True:
            orders = await self.client.list_changed_orders(
                since, until, status=status, page=page, size=self.page_size
            )
            if report is not None:
                report.pages = page
            logger.debug(f"Naver orders page {page}: {len(orders)} orders")

            for order in orders:
                yield order

            if len(orders) < self.page_size:
                break
            page += 1
            await self._sleep(self.page_delay)

    async def ingest(
        self,
        since: datetime,
        until: Optional[datetime] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> IngestionReport:
        until = until or utcnow()
        report = IngestionReport(window_from=since, window_to=until)
        logger.info(f"Ingesting Naver orders changed between {since.isoformat()} and {until.isoformat()}")

        async for order in self.fetch_since(since, until, report=report):
            if should_stop and should_stop():
                report.stopped_early = True
                logger.info("Order ingestion stopped at a checkpoint")
                break
            report.orders_seen += 1
            report.orders.append(await self.process_order(order))

        logger.info(
            f"Order ingestion finished: {report.orders_seen} orders, "
            f"{report.count('applied')} applied, {report.count('duplicate')} already handled, "
            f"{report.count('excluded')} excluded, {report.count('partial')} partial"
        )
        return report

    async def process_order(self, order: Dict[str, Any]) -> OrderOutcome:
        lines = extract_order_lines(order)
        order_id = lines[0].order_id if lines else str(order.get("orderId") or "")
        if not order_id:
            return OrderOutcome(order_id="", status="partial", errors=["Order without an id"])

        ack = await self.store.get_order_ack(order_id) or OrderAcknowledgement(
            order_id=order_id, status=OrderAckStatus.PARTIAL
        )
        # Flat change feeds list each product order separately under one orderId
        handled = set(ack.applied_line_ids) | set(ack.skipped_line_ids)
        pending = [line for line in lines if line.line_id not in handled]
        if ack.created_at is not None and not pending:
            return OrderOutcome(order_id=order_id, status="duplicate")

        outcome = OrderOutcome(order_id=order_id, status="applied")
        newly_applied: List[str] = []

        for line in pending:
            if line.status in TERMINAL_NEGATIVE_ORDER_STATUSES:
                ack.skipped_line_ids.append(line.line_id)
                outcome.skipped_lines += 1
                continue
            if not line.sku or line.quantity == 0:
                logger.warning(f"Order {order_id} line {line.line_id} has no SKU or quantity, skipping")
                ack.skipped_line_ids.append(line.line_id)
                outcome.skipped_lines += 1
                continue

            try:
                result = await self.reconciler.adjust(
                    line.sku,
                    PlatformScope.SHOPIFY,
                    AdjustType.SUBTRACT,
                    line.quantity,
                    reason=f"Naver order {order_id}",
                    actor=Actor.WEBHOOK,
                    order_id=order_id,
                    order_line_id=line.line_id,
                )
            except (MappingNotFound, ValidationError) as e:
                logger.warning(f"Order {order_id} line {line.line_id} skipped ({e.code}): {e}")
                ack.skipped_line_ids.append(line.line_id)
                outcome.skipped_lines += 1
                continue

            if result.failed_platforms:
                error = "; ".join(o.error or "" for o in result.outcomes.values() if not o.success)
                outcome.failed_lines += 1
                outcome.errors.append(f"{line.line_id}: {error}")
                continue

            ack.applied_line_ids.append(line.line_id)
            newly_applied.append(line.line_id)
            outcome.applied_lines += 1

        ack.line_count = max(ack.line_count, len(lines))
        if outcome.failed_lines:
            ack.status = OrderAckStatus.PARTIAL
            ack.last_error = "; ".join(outcome.errors)[:1000]
            outcome.status = "partial"
        elif not ack.applied_line_ids:
            ack.status = OrderAckStatus.EXCLUDED
            ack.last_error = None
            outcome.status = "excluded"
        else:
            ack.status = OrderAckStatus.APPLIED
            ack.last_error = None

        await self.store.save_order_ack(ack)

        if ack.status == OrderAckStatus.APPLIED and self.acknowledge_remote and newly_applied:
            await self._acknowledge(order_id, newly_applied)

        return outcome

    async def _acknowledge(self, order_id: str, product_order_ids: List[str]):
        try:
            await self.client.acknowledge_orders(product_order_ids)
        except SyncEngineError as e:
            # Local marker already prevents double decrement; Naver ack can be redone by hand
            logger.warning(f"Could not acknowledge Naver order {order_id}: {e}")
