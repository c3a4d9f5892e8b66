"""
Admin order overrides and back-office views.

Both overrides are privileged mutations and therefore run through
``AuditLogger.perform``: the status write and its audit entry commit
together or not at all.
"""
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.models import AuditAction, AuditEntityType
from services.audit_service.service import Audited, AuditLogger
from services.order_service.models import Order, OrderStatus
from services.order_service.repository import OrderRepository
from services.order_service.schemas import OrderResponse
from services.payment_service.schemas import PaymentListResponse, SettlementListResponse
from services.payment_service.service import PaymentProcessor
from shared.cache import CacheKeys, CacheStore
from shared.errors import ConflictError, NotFoundError, PreconditionError

from .schemas import AdminOrderListResponse, OrderActionResponse

logger = structlog.get_logger(__name__)


class AdminService:
    def __init__(self, audit: AuditLogger, payments: PaymentProcessor, cache: CacheStore, ttl: int):
        self.audit = audit
        self.payments = payments
        self.cache = cache
        self.ttl = ttl

    async def _invalidate(self, order: Order) -> None:
        await self.cache.invalidate(
            CacheKeys.ADMIN_ORDERS,
            CacheKeys.order_detail(order.id),
            CacheKeys.buyer_orders(order.buyer_id),
            CacheKeys.tracking(order.id),
        )

    async def _set_status(self, db: AsyncSession, order_id: int, previous: str, new_status: OrderStatus) -> None:
        if not await OrderRepository.transition_status(db, order_id, new_status, [previous]):
            raise ConflictError("Order status changed while processing, please retry")

    # ORDERS

    async def list_orders(self, db: AsyncSession) -> AdminOrderListResponse:
        cached = await self.cache.get(CacheKeys.ADMIN_ORDERS)
        if cached:
            return AdminOrderListResponse.model_validate(cached)

        orders = await OrderRepository.list_all(db)
        response = AdminOrderListResponse(orders=[OrderResponse.model_validate(o) for o in orders])
        await self.cache.set(CacheKeys.ADMIN_ORDERS, response.model_dump(mode="json"), self.ttl)
        return response

    async def cancel_order(self, db: AsyncSession, order_id: int, actor_id: str) -> OrderActionResponse:
        async def cancel() -> Audited:
            order = await OrderRepository.get_order_for_update(db, order_id)
            if not order:
                raise NotFoundError("Order not found")
            if order.status == OrderStatus.DELIVERED.value:
                raise PreconditionError("Cannot cancel a delivered order")
            if order.status == OrderStatus.CANCELLED.value:
                raise PreconditionError("Order is already cancelled")

            previous = order.status
            await self._set_status(db, order_id, previous, OrderStatus.CANCELLED)
            return Audited(
                result=order.id,
                entity_id=order.id,
                metadata={"previousStatus": previous, "newStatus": OrderStatus.CANCELLED.value},
            )

        await self.audit.perform(db, actor_id, AuditAction.ORDER_CANCELLED, AuditEntityType.ORDER, cancel)

        order = await OrderRepository.get_order(db, order_id)
        await self._invalidate(order)
        logger.warning("order_cancelled_by_admin", order_id=order_id, actor_id=actor_id)
        return OrderActionResponse(message="Order cancelled", order=OrderResponse.model_validate(order))

    async def force_confirm_order(self, db: AsyncSession, order_id: int, actor_id: str) -> OrderActionResponse:
        async def force_confirm() -> Audited:
            order = await OrderRepository.get_order_for_update(db, order_id)
            if not order:
                raise NotFoundError("Order not found")
            if order.status == OrderStatus.CONFIRMED.value:
                raise PreconditionError("Order is already confirmed")
            if order.status == OrderStatus.CANCELLED.value:
                raise PreconditionError("Cannot confirm a cancelled order")
            if order.status == OrderStatus.DELIVERED.value:
                raise PreconditionError("Order is already delivered")
            if order.status != OrderStatus.PLACED.value:
                # confirming a SHIPPED order would move it backwards
                raise PreconditionError("Order is already past confirmation")

            previous = order.status
            await self._set_status(db, order_id, previous, OrderStatus.CONFIRMED)
            return Audited(
                result=order.id,
                entity_id=order.id,
                metadata={
                    "previousStatus": previous,
                    "newStatus": OrderStatus.CONFIRMED.value,
                    "bypassedPayment": True,
                },
            )

        await self.audit.perform(db, actor_id, AuditAction.ORDER_FORCE_CONFIRMED, AuditEntityType.ORDER, force_confirm)

        order = await OrderRepository.get_order(db, order_id)
        await self._invalidate(order)
        logger.warning("order_force_confirmed", order_id=order_id, actor_id=actor_id, bypassed_payment=True)
        return OrderActionResponse(message="Order confirmed", order=OrderResponse.model_validate(order))

    # PAYMENTS

    async def list_payments(self, db: AsyncSession) -> PaymentListResponse:
        return await self.payments.list_all_payments(db, self.ttl)

    async def list_settlements(self, db: AsyncSession) -> SettlementListResponse:
        return await self.payments.list_all_settlements(db)
