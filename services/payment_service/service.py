"""
Payment initiation and webhook application.

Webhooks arrive at least once and possibly concurrently. Every transition is
a conditional update on the payment row (which is also locked ``FOR UPDATE``):
``INITIATED -> FAILED`` and ``INITIATED|FAILED -> SUCCESS``. A capture can
follow a failed attempt on the same provider order id; nothing leaves SUCCESS.
Everything the winning delivery does (payment event, order confirmation,
settlement fan-out) commits in the same transaction; losers are acknowledged
as duplicates without writing.
"""
import asyncio
import json
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.models import OrderStatus
from services.order_service.repository import OrderRepository
from shared.cache import CacheKeys, CacheStore
from shared.config.database import transaction
from shared.errors import (
    ConflictError,
    GatewayTimeoutError,
    NotFoundError,
    PreconditionError,
    SecurityError,
    ValidationError,
)
from shared.notifications import NotificationKind, Notifier
from shared.observability import mkt_settlements_created_total, mkt_webhook_total

from .gateways import GatewayRegistry, PaymentGateway, WebhookKind, WebhookOutcome
from .models import (
    CAPTURABLE_PAYMENT_STATUSES,
    Payment,
    PaymentEvent,
    PaymentEventType,
    PaymentStatus,
    SellerSettlement,
    SettlementStatus,
)
from .repository import PaymentRepository, SettlementRepository
from .schemas import (
    PaymentInitiateResponse,
    PaymentListResponse,
    PaymentResponse,
    SettlementListResponse,
    SettlementResponse,
    WebhookAck,
)

logger = structlog.get_logger(__name__)


@dataclass
class _Applied:
    """What a webhook transaction did, for the post-commit side effects."""

    outcome: str
    order_id: Optional[int] = None
    buyer_id: Optional[str] = None
    confirmed: bool = False
    seller_item_counts: Dict[str, int] = field(default_factory=dict)
    amount: Optional[Decimal] = None


class PaymentProcessor:
    def __init__(
        self,
        gateways: GatewayRegistry,
        notifier: Notifier,
        cache: CacheStore,
        currency: str = "INR",
        gateway_timeout: float = 10.0,
    ):
        self.gateways = gateways
        self.notifier = notifier
        self.cache = cache
        self.currency = currency
        self.gateway_timeout = gateway_timeout

    # INITIATE

    async def _check_payable(self, db: AsyncSession, buyer_id: str, order_id: int, lock: bool = False):
        if lock:
            order = await OrderRepository.get_order_for_update(db, order_id)
        else:
            order = await OrderRepository.get_order(db, order_id)
        if not order or order.buyer_id != buyer_id:
            raise NotFoundError("Order not found")
        if order.status != OrderStatus.PLACED.value:
            raise PreconditionError("Order is not awaiting payment")
        if await PaymentRepository.active_payment_for_order(db, order_id):
            raise ConflictError("Order already has an active payment")
        return order

    async def initiate(self, db: AsyncSession, buyer_id: str, order_id: int, provider: str) -> PaymentInitiateResponse:
        gateway = self.gateways.get(provider)
        order = await self._check_payable(db, buyer_id, order_id)
        amount = Decimal(order.total_amount)

        # No payment row exists until the gateway has issued its order id
        try:
            intent = await asyncio.wait_for(
                gateway.create_intent(order.id, amount, self.currency),
                timeout=self.gateway_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("payment_intent_timeout", order_id=order_id, provider=gateway.provider.value)
            raise GatewayTimeoutError("Payment gateway timed out")

        async with transaction(db):
            # Re-checked under the order lock: a parallel initiation may have won meanwhile
            await self._check_payable(db, buyer_id, order_id, lock=True)
            payment = await PaymentRepository.create_payment(db, Payment(
                order_id=order.id,
                buyer_id=buyer_id,
                provider=gateway.provider.value,
                provider_order_id=intent.provider_order_id,
                amount=amount,
                currency=self.currency,
                status=PaymentStatus.INITIATED.value,
            ))

        await self.cache.invalidate(CacheKeys.ADMIN_PAYMENTS)
        logger.info(
            "payment_initiated",
            payment_id=payment.id,
            order_id=order.id,
            provider=payment.provider,
            provider_order_id=payment.provider_order_id,
        )
        return PaymentInitiateResponse(
            payment_id=payment.id,
            order_id=order.id,
            provider=payment.provider,
            provider_order_id=payment.provider_order_id,
            amount=amount,
            currency=self.currency,
            status=payment.status,
            checkout=intent.checkout,
        )

    # WEBHOOK

    async def apply_webhook(
        self,
        db: AsyncSession,
        provider: str,
        raw_body: bytes,
        signature: Optional[str],
    ) -> WebhookAck:
        gateway = self.gateways.get(provider)
        provider_tag = gateway.provider.value

        if not gateway.verify_signature(raw_body, signature):
            mkt_webhook_total.labels(provider=provider_tag, outcome="rejected").inc()
            logger.warning("webhook_signature_invalid", provider=provider_tag)
            raise SecurityError("Invalid signature")

        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Malformed webhook payload")
        if not isinstance(payload, dict):
            raise ValidationError("Malformed webhook payload")

        outcome = gateway.parse_webhook(payload)
        if outcome.kind == WebhookKind.IGNORED:
            applied = _Applied(outcome="ignored")
            logger.info("webhook_ignored", provider=provider_tag, webhook_event=outcome.event)
        elif not outcome.provider_order_id:
            applied = _Applied(outcome="unmatched")
            logger.warning("webhook_without_order_id", provider=provider_tag, webhook_event=outcome.event)
        elif outcome.kind == WebhookKind.CAPTURED:
            applied = await self._apply_captured(db, gateway, outcome, payload, signature)
        else:
            applied = await self._apply_failed(db, gateway, outcome, payload)

        mkt_webhook_total.labels(provider=provider_tag, outcome=applied.outcome).inc()
        await self._after_commit(applied)
        return WebhookAck(status="ok", outcome=applied.outcome)

    async def _apply_captured(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        outcome: WebhookOutcome,
        payload: Dict[str, Any],
        signature: Optional[str],
    ) -> _Applied:
        async with transaction(db):
            payment = await PaymentRepository.get_by_provider_order_id(db, outcome.provider_order_id)
            if payment is None:
                logger.warning(
                    "webhook_unmatched",
                    provider=gateway.provider.value,
                    provider_order_id=outcome.provider_order_id,
                )
                return _Applied(outcome="unmatched")

            won = await PaymentRepository.mark_terminal(
                db,
                payment.id,
                PaymentStatus.SUCCESS,
                from_statuses=CAPTURABLE_PAYMENT_STATUSES,
                provider_payment_id=outcome.provider_payment_id,
                provider_signature=signature,
            )
            if not won:
                logger.info(
                    "webhook_duplicate",
                    payment_id=payment.id,
                    provider_order_id=outcome.provider_order_id,
                    current_status=payment.status,
                )
                return _Applied(outcome="duplicate", order_id=payment.order_id)

            if payment.status == PaymentStatus.FAILED.value:
                logger.warning(
                    "payment_captured_after_failure",
                    payment_id=payment.id,
                    order_id=payment.order_id,
                    provider_order_id=outcome.provider_order_id,
                )

            await PaymentRepository.add_event(db, PaymentEvent(
                payment_id=payment.id,
                type=PaymentEventType.WEBHOOK.value,
                payload=payload,
            ))

            order = await OrderRepository.get_order_for_update(db, payment.order_id)
            applied = _Applied(
                outcome="captured",
                order_id=order.id,
                buyer_id=order.buyer_id,
                amount=Decimal(payment.amount),
            )

            if order.status == OrderStatus.CANCELLED.value:
                logger.warning(
                    "payment_captured_for_cancelled_order",
                    order_id=order.id,
                    payment_id=payment.id,
                    refund_required=True,
                )
                return applied

            if order.status == OrderStatus.PLACED.value:
                await OrderRepository.transition_status(
                    db, order.id, OrderStatus.CONFIRMED, [OrderStatus.PLACED.value]
                )

            applied.confirmed = True
            applied.seller_item_counts = await self._create_settlements(db, order.id)

        logger.info("payment_captured", payment_id=payment.id, order_id=applied.order_id)
        return applied

    async def _create_settlements(self, db: AsyncSession, order_id: int) -> Dict[str, int]:
        """One PENDING settlement per order line; returns item counts per seller."""
        items = await OrderRepository.items_for_order(db, order_id)
        already = set(await SettlementRepository.existing_item_ids(db, [item.id for item in items]))

        settlements = [
            SellerSettlement(
                seller_id=item.seller_id,
                order_item_id=item.id,
                amount=Decimal(item.price_snapshot) * item.quantity,
                status=SettlementStatus.PENDING.value,
            )
            for item in items
            if item.id not in already
        ]
        if settlements:
            await SettlementRepository.create_many(db, settlements)
            mkt_settlements_created_total.inc(len(settlements))

        return dict(Counter(item.seller_id for item in items))

    async def _apply_failed(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        outcome: WebhookOutcome,
        payload: Dict[str, Any],
    ) -> _Applied:
        async with transaction(db):
            payment = await PaymentRepository.get_by_provider_order_id(db, outcome.provider_order_id)
            if payment is None:
                logger.warning(
                    "webhook_unmatched",
                    provider=gateway.provider.value,
                    provider_order_id=outcome.provider_order_id,
                )
                return _Applied(outcome="unmatched")

            won = await PaymentRepository.mark_terminal(
                db,
                payment.id,
                PaymentStatus.FAILED,
                provider_payment_id=outcome.provider_payment_id,
            )
            if not won:
                return _Applied(outcome="duplicate", order_id=payment.order_id)

            await PaymentRepository.add_event(db, PaymentEvent(
                payment_id=payment.id,
                type=PaymentEventType.FAILED.value,
                payload=payload,
            ))

        logger.info("payment_failed", payment_id=payment.id, order_id=payment.order_id)
        return _Applied(outcome="failed", order_id=payment.order_id)

    async def _after_commit(self, applied: _Applied) -> None:
        if applied.outcome not in ("captured", "failed"):
            return

        await self.cache.invalidate(
            CacheKeys.ADMIN_PAYMENTS,
            CacheKeys.ADMIN_ORDERS,
            CacheKeys.order_detail(applied.order_id),
            CacheKeys.tracking(applied.order_id),
        )
        if applied.buyer_id:
            await self.cache.invalidate(CacheKeys.buyer_orders(applied.buyer_id))

        if not applied.confirmed:
            return

        await self.notifier.notify(
            NotificationKind.ORDER_CONFIRMED,
            applied.buyer_id,
            {"orderId": applied.order_id, "amount": str(applied.amount)},
        )
        for seller_id, item_count in sorted(applied.seller_item_counts.items()):
            await self.notifier.notify(
                NotificationKind.SELLER_ORDER_PAID,
                seller_id,
                {"orderId": applied.order_id, "itemCount": item_count},
            )

    # QUERIES

    async def get_order_payments(self, db: AsyncSession, buyer_id: str, order_id: int) -> PaymentListResponse:
        order = await OrderRepository.get_buyer_order(db, order_id, buyer_id)
        if not order:
            raise NotFoundError("Order not found")
        payments = await PaymentRepository.list_for_order(db, order_id)
        return PaymentListResponse(payments=[PaymentResponse.model_validate(p) for p in payments])

    async def list_seller_settlements(self, db: AsyncSession, seller_id: str) -> SettlementListResponse:
        settlements = await SettlementRepository.list_by_seller(db, seller_id)
        return SettlementListResponse(
            settlements=[SettlementResponse.model_validate(s) for s in settlements]
        )

    async def list_all_settlements(self, db: AsyncSession) -> SettlementListResponse:
        settlements = await SettlementRepository.list_all(db)
        return SettlementListResponse(
            settlements=[SettlementResponse.model_validate(s) for s in settlements]
        )

    async def list_all_payments(self, db: AsyncSession, ttl: int) -> PaymentListResponse:
        cached = await self.cache.get(CacheKeys.ADMIN_PAYMENTS)
        if cached:
            return PaymentListResponse.model_validate(cached)

        payments = await PaymentRepository.list_all(db)
        response = PaymentListResponse(payments=[PaymentResponse.model_validate(p) for p in payments])
        await self.cache.set(CacheKeys.ADMIN_PAYMENTS, response.model_dump(mode="json"), ttl)
        return response
