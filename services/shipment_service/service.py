"""
Per-seller shipments and buyer tracking.

Sellers move their own shipment strictly forward (CREATED -> SHIPPED ->
DELIVERED). Admins may set any status through ``admin_override``, which is
audited. Either way the shipment change, its event row and the order status
recompute commit together.
"""
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.models import AuditAction, AuditEntityType
from services.audit_service.service import Audited, AuditLogger
from services.order_service.models import Order, OrderStatus
from services.order_service.repository import OrderRepository
from shared.cache import CacheKeys, CacheStore
from shared.config.database import transaction
from shared.errors import ConflictError, ForbiddenError, NotFoundError, PreconditionError
from shared.notifications import NotificationKind, Notifier
from shared.observability import mkt_shipment_transitions_total

from .models import FORWARD_TRANSITIONS, Shipment, ShipmentEvent, ShipmentStatus
from .repository import ShipmentRepository
from .schemas import (
    ShipmentCreate,
    ShipmentListResponse,
    ShipmentResponse,
    SyncResponse,
    TrackingResponse,
    TrackingShipment,
)
from .synchronizer import OrderStatusSynchronizer

logger = structlog.get_logger(__name__)


class ShipmentTracker:
    def __init__(
        self,
        synchronizer: OrderStatusSynchronizer,
        audit: AuditLogger,
        notifier: Notifier,
        cache: CacheStore,
        tracking_ttl: int = 600,
    ):
        self.synchronizer = synchronizer
        self.audit = audit
        self.notifier = notifier
        self.cache = cache
        self.tracking_ttl = tracking_ttl

    async def _invalidate(self, order: Order) -> None:
        await self.cache.invalidate(
            CacheKeys.tracking(order.id),
            CacheKeys.order_detail(order.id),
            CacheKeys.buyer_orders(order.buyer_id),
            CacheKeys.ADMIN_ORDERS,
        )

    async def _load(self, db: AsyncSession, shipment_id: int) -> ShipmentResponse:
        shipment = await ShipmentRepository.get(db, shipment_id)
        return ShipmentResponse.model_validate(shipment)

    # SELLER

    async def create(self, db: AsyncSession, order_id: int, seller_id: str, data: ShipmentCreate) -> ShipmentResponse:
        try:
            async with transaction(db):
                order = await OrderRepository.get_order_for_update(db, order_id)
                if not order:
                    raise NotFoundError("Order not found")
                if order.status != OrderStatus.CONFIRMED.value:
                    raise PreconditionError("Order not shippable yet")
                if await OrderRepository.count_seller_items(db, order_id, seller_id) == 0:
                    raise ForbiddenError("No items for this seller")
                if await ShipmentRepository.exists_for_seller(db, order_id, seller_id):
                    raise ConflictError("Shipment already exists")

                shipment = await ShipmentRepository.create(db, Shipment(
                    order_id=order_id,
                    seller_id=seller_id,
                    carrier=data.carrier,
                    tracking_number=data.tracking_number,
                    status=ShipmentStatus.CREATED.value,
                ))
                await ShipmentRepository.add_event(db, ShipmentEvent(
                    shipment_id=shipment.id,
                    status=ShipmentStatus.CREATED.value,
                    note="Shipment created",
                ))
        except IntegrityError:
            # unique (order_id, seller_id) caught a concurrent create
            raise ConflictError("Shipment already exists")

        mkt_shipment_transitions_total.labels(status=ShipmentStatus.CREATED.value, path="seller").inc()
        logger.info("shipment_created", shipment_id=shipment.id, order_id=order_id, seller_id=seller_id)
        await self._invalidate(order)
        return await self._load(db, shipment.id)

    async def update_status(
        self,
        db: AsyncSession,
        shipment_id: int,
        seller_id: str,
        new_status: ShipmentStatus,
        note: Optional[str] = None,
    ) -> ShipmentResponse:
        new_status = ShipmentStatus(new_status)

        async with transaction(db):
            shipment = await ShipmentRepository.get_for_update(db, shipment_id)
            if not shipment or shipment.seller_id != seller_id:
                raise NotFoundError("Shipment not found")

            order = await OrderRepository.get_order(db, shipment.order_id)
            if order.status == OrderStatus.CANCELLED.value:
                raise PreconditionError("Order has been cancelled")

            current = ShipmentStatus(shipment.status)
            if current == ShipmentStatus.DELIVERED:
                raise PreconditionError("Cannot update a delivered shipment")

            expected = FORWARD_TRANSITIONS.get(new_status)
            if expected is None:
                raise PreconditionError(f"Shipment cannot be moved to {new_status.value}")
            if current != expected:
                raise PreconditionError(
                    f"Shipment can only be marked {new_status.value} from {expected.value} state"
                )

            if not await ShipmentRepository.advance(db, shipment.id, new_status, expected):
                raise ConflictError("Shipment was updated by another request")

            await ShipmentRepository.add_event(db, ShipmentEvent(
                shipment_id=shipment.id,
                status=new_status.value,
                note=note or f"Shipment marked as {new_status.value}",
            ))
            await self.synchronizer.sync(db, shipment.order_id)

        mkt_shipment_transitions_total.labels(status=new_status.value, path="seller").inc()
        logger.info(
            "shipment_status_updated",
            shipment_id=shipment.id,
            order_id=shipment.order_id,
            previous_status=current.value,
            new_status=new_status.value,
        )
        await self._invalidate(order)

        if new_status == ShipmentStatus.SHIPPED:
            await self.notifier.notify(NotificationKind.ORDER_SHIPPED, order.buyer_id, {
                "orderId": order.id,
                "carrier": shipment.carrier,
                "trackingNumber": shipment.tracking_number,
            })
        elif new_status == ShipmentStatus.DELIVERED:
            await self.notifier.notify(NotificationKind.ORDER_DELIVERED, order.buyer_id, {"orderId": order.id})

        return await self._load(db, shipment.id)

    async def seller_shipments(self, db: AsyncSession, seller_id: str) -> ShipmentListResponse:
        shipments = await ShipmentRepository.list_for_seller(db, seller_id)
        return ShipmentListResponse(shipments=[ShipmentResponse.model_validate(s) for s in shipments])

    # ADMIN

    async def admin_override(
        self,
        db: AsyncSession,
        shipment_id: int,
        admin_id: str,
        new_status: ShipmentStatus,
        note: str,
    ) -> ShipmentResponse:
        new_status = ShipmentStatus(new_status)

        async def override() -> Audited:
            shipment = await ShipmentRepository.get_for_update(db, shipment_id)
            if not shipment:
                raise NotFoundError("Shipment not found")
            previous = shipment.status

            await ShipmentRepository.force_status(db, shipment.id, new_status)
            await ShipmentRepository.add_event(db, ShipmentEvent(
                shipment_id=shipment.id,
                status=new_status.value,
                note=f"Admin Override: {note}",
            ))
            await self.synchronizer.sync(db, shipment.order_id)
            return Audited(
                result=shipment.order_id,
                entity_id=shipment.id,
                metadata={
                    "shipmentId": shipment.id,
                    "orderId": shipment.order_id,
                    "oldStatus": previous,
                    "newStatus": new_status.value,
                    "reason": note,
                },
            )

        order_id = await self.audit.perform(
            db,
            admin_id,
            AuditAction.SHIPMENT_STATUS_OVERRIDE,
            AuditEntityType.SHIPMENT,
            override,
        )

        mkt_shipment_transitions_total.labels(status=new_status.value, path="admin").inc()
        logger.warning(
            "shipment_status_overridden",
            shipment_id=shipment_id,
            order_id=order_id,
            admin_id=admin_id,
            new_status=new_status.value,
        )
        order = await OrderRepository.get_order(db, order_id)
        await self._invalidate(order)
        return await self._load(db, shipment_id)

    async def admin_tracking(self, db: AsyncSession, order_id: int) -> TrackingResponse:
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise NotFoundError("Order not found")
        return await self._tracking(db, order)

    async def resync(self, db: AsyncSession, order_id: int) -> SyncResponse:
        async with transaction(db):
            if not await OrderRepository.get_order(db, order_id):
                raise NotFoundError("Order not found")
            changed = await self.synchronizer.sync(db, order_id)

        order = await OrderRepository.get_order(db, order_id)
        if changed:
            await self._invalidate(order)
        return SyncResponse(order_id=order.id, status=order.status, changed=changed is not None)

    # BUYER

    async def get_tracking(self, db: AsyncSession, order_id: int, buyer_id: str) -> TrackingResponse:
        order = await OrderRepository.get_order(db, order_id)
        # Same answer for "absent" and "not yours"
        if not order or order.buyer_id != buyer_id:
            raise NotFoundError("Order not found")
        return await self._tracking(db, order)

    async def _tracking(self, db: AsyncSession, order: Order) -> TrackingResponse:
        key = CacheKeys.tracking(order.id)
        cached = await self.cache.get(key)
        if cached:
            return TrackingResponse.model_validate(cached)

        shipments = await ShipmentRepository.list_for_order(db, order.id)
        response = TrackingResponse(
            order_id=order.id,
            status=order.status,
            shipments=[TrackingShipment.model_validate(s) for s in shipments],
        )
        await self.cache.set(key, response.model_dump(mode="json"), self.tracking_ttl)
        return response
