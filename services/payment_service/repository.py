from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Payment, PaymentEvent, PaymentStatus, SellerSettlement


class PaymentRepository:
    @staticmethod
    async def create_payment(db: AsyncSession, payment: Payment) -> Payment:
        db.add(payment)
        await db.flush()
        return payment

    @staticmethod
    async def get_by_provider_order_id(db: AsyncSession, provider_order_id: str) -> Optional[Payment]:
        """Row-locks the payment so concurrent deliveries for it queue up."""
        result = await db.execute(
            select(Payment)
            .where(Payment.provider_order_id == provider_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def active_payment_for_order(db: AsyncSession, order_id: int) -> Optional[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.order_id == order_id, Payment.status != PaymentStatus.FAILED.value)
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def list_for_order(db: AsyncSession, order_id: int) -> List[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.order_id == order_id)
            .order_by(Payment.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_all(db: AsyncSession) -> List[Payment]:
        result = await db.execute(
            select(Payment)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def mark_terminal(
        db: AsyncSession,
        payment_id: int,
        new_status: PaymentStatus,
        from_statuses: Iterable[PaymentStatus] = (PaymentStatus.INITIATED,),
        provider_payment_id: Optional[str] = None,
        provider_signature: Optional[str] = None,
    ) -> bool:
        """``from_statuses`` -> ``new_status``. False when another delivery got there first."""
        values: Dict[str, Any] = {"status": new_status.value}
        if provider_payment_id is not None:
            values["provider_payment_id"] = provider_payment_id
        if provider_signature is not None:
            values["provider_signature"] = provider_signature

        result = await db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status.in_([status.value for status in from_statuses]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def add_event(db: AsyncSession, event: PaymentEvent) -> PaymentEvent:
        db.add(event)
        await db.flush()
        return event


class SettlementRepository:
    @staticmethod
    async def create_many(db: AsyncSession, settlements: List[SellerSettlement]) -> List[SellerSettlement]:
        db.add_all(settlements)
        await db.flush()
        return settlements

    @staticmethod
    async def existing_item_ids(db: AsyncSession, order_item_ids: List[int]) -> List[int]:
        if not order_item_ids:
            return []
        result = await db.execute(
            select(SellerSettlement.order_item_id).where(SellerSettlement.order_item_id.in_(order_item_ids))
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_by_seller(db: AsyncSession, seller_id: str) -> List[SellerSettlement]:
        result = await db.execute(
            select(SellerSettlement)
            .where(SellerSettlement.seller_id == seller_id)
            .order_by(SellerSettlement.created_at.desc(), SellerSettlement.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_all(db: AsyncSession) -> List[SellerSettlement]:
        result = await db.execute(
            select(SellerSettlement).order_by(SellerSettlement.created_at.desc(), SellerSettlement.id.desc())
        )
        return list(result.scalars().all())

