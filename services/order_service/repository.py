from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order, OrderItem, OrderStatus


class OrderRepository:
    @staticmethod
    async def create_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_order_for_update(db: AsyncSession, order_id: int) -> Optional[Order]:
        """Row-locks the order until the surrounding transaction ends."""
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_buyer_order(db: AsyncSession, order_id: int, buyer_id: str) -> Optional[Order]:
        result = await db.execute(
            select(Order).where(Order.id == order_id, Order.buyer_id == buyer_id)
        )
        return result.scalars().first()

    @staticmethod
    async def list_by_buyer(db: AsyncSession, buyer_id: str) -> List[Order]:
        result = await db.execute(
            select(Order).where(Order.buyer_id == buyer_id).order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_all(db: AsyncSession) -> List[Order]:
        result = await db.execute(select(Order).order_by(Order.created_at.desc(), Order.id.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def items_for_order(db: AsyncSession, order_id: int) -> List[OrderItem]:
        result = await db.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def seller_ids_for_order(db: AsyncSession, order_id: int) -> List[str]:
        result = await db.execute(
            select(OrderItem.seller_id).where(OrderItem.order_id == order_id).distinct()
        )
        return sorted(result.scalars().all())

    @staticmethod
    async def count_seller_items(db: AsyncSession, order_id: int, seller_id: str) -> int:
        result = await db.execute(
            select(func.count(OrderItem.id)).where(
                OrderItem.order_id == order_id,
                OrderItem.seller_id == seller_id,
            )
        )
        return result.scalar_one()

    @staticmethod
    async def seller_items(db: AsyncSession, seller_id: str, order_id: Optional[int] = None) -> List[OrderItem]:
        stmt = (
            select(OrderItem)
            .join(Order, OrderItem.order_id == Order.id)
            .where(OrderItem.seller_id == seller_id)
            .order_by(Order.created_at.desc(), OrderItem.id)
        )
        if order_id is not None:
            stmt = stmt.where(OrderItem.order_id == order_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def transition_status(
        db: AsyncSession,
        order_id: int,
        new_status: OrderStatus,
        from_statuses: Iterable[str],
    ) -> bool:
        """Set ``new_status`` only if the stored status is one of ``from_statuses``."""
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_(list(from_statuses)))
            .values(status=new_status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
