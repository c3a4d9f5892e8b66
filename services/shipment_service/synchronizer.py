"""
Derives one order status from the per-seller shipments of that order.

The computation is a pure function of stored shipment state, so concurrent
runs converge on the same target; the write itself is a conditional update
that only moves forward along PLACED < CONFIRMED < SHIPPED < DELIVERED.
"""
from typing import Iterable, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.models import STATUS_RANK, OrderStatus, statuses_below
from services.order_service.repository import OrderRepository
from shared.observability import mkt_order_status_sync_total

from .models import SHIPMENT_RANK, Shipment, ShipmentStatus
from .repository import ShipmentRepository

logger = structlog.get_logger(__name__)


def target_status(shipments: Sequence[Shipment], seller_ids: Iterable[str]) -> Optional[OrderStatus]:
    """DELIVERED if every seller delivered, SHIPPED if every seller shipped, else None.

    A seller with items in the order but no shipment yet counts as not shipped.
    """
    if not shipments:
        return None
    if not set(seller_ids) <= {shipment.seller_id for shipment in shipments}:
        return None

    lowest = min(SHIPMENT_RANK[ShipmentStatus(shipment.status)] for shipment in shipments)
    if lowest >= SHIPMENT_RANK[ShipmentStatus.DELIVERED]:
        return OrderStatus.DELIVERED
    if lowest >= SHIPMENT_RANK[ShipmentStatus.SHIPPED]:
        return OrderStatus.SHIPPED
    return None


class OrderStatusSynchronizer:

    async def sync(self, db: AsyncSession, order_id: int) -> Optional[OrderStatus]:
        """Runs inside the caller's transaction. Returns the new status, or None if nothing changed."""
        order = await OrderRepository.get_order_for_update(db, order_id)
        if order is None:
            return None

        if order.status == OrderStatus.CANCELLED.value:
            mkt_order_status_sync_total.labels(result="blocked").inc()
            return None

        shipments = await ShipmentRepository.list_for_order(db, order_id)
        seller_ids = await OrderRepository.seller_ids_for_order(db, order_id)
        target = target_status(shipments, seller_ids)

        if target is None or target.value == order.status:
            mkt_order_status_sync_total.labels(result="unchanged").inc()
            return None

        current = OrderStatus(order.status)
        if STATUS_RANK[target] < STATUS_RANK[current]:
            # e.g. an override pulled one shipment of a DELIVERED order back to SHIPPED
            logger.info(
                "order_status_regression_ignored",
                order_id=order_id,
                current_status=current.value,
                computed_status=target.value,
            )
            mkt_order_status_sync_total.labels(result="blocked").inc()
            return None

        if not await OrderRepository.transition_status(db, order_id, target, statuses_below(target)):
            mkt_order_status_sync_total.labels(result="blocked").inc()
            return None

        mkt_order_status_sync_total.labels(result="updated").inc()
        logger.info(
            "order_status_synced",
            order_id=order_id,
            previous_status=current.value,
            new_status=target.value,
        )
        return target
