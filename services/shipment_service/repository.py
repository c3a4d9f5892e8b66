from typing import Any, Dict, List, Optional

from sqlalchemy import func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import utcnow

from .models import Shipment, ShipmentEvent, ShipmentStatus


def _status_values(new_status: ShipmentStatus) -> Dict[str, Any]:
    """Column values for ``new_status``; timestamps of later stages are cleared."""
    now = utcnow()
    values: Dict[str, Any] = {"status": new_status.value, "updated_at": now}
    if new_status == ShipmentStatus.CREATED:
        values["shipped_at"] = None
        values["delivered_at"] = None
    elif new_status == ShipmentStatus.SHIPPED:
        # an override back from DELIVERED keeps the original ship time
        values["shipped_at"] = func.coalesce(Shipment.shipped_at, literal(now, Shipment.shipped_at.type))
        values["delivered_at"] = None
    elif new_status == ShipmentStatus.DELIVERED:
        values["shipped_at"] = func.coalesce(Shipment.shipped_at, literal(now, Shipment.shipped_at.type))
        values["delivered_at"] = now
    return values


class ShipmentRepository:
    @staticmethod
    async def create(db: AsyncSession, shipment: Shipment) -> Shipment:
        db.add(shipment)
        await db.flush()
        return shipment

    @staticmethod
    async def get(db: AsyncSession, shipment_id: int) -> Optional[Shipment]:
        result = await db.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_for_update(db: AsyncSession, shipment_id: int) -> Optional[Shipment]:
        result = await db.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def exists_for_seller(db: AsyncSession, order_id: int, seller_id: str) -> bool:
        result = await db.execute(
            select(Shipment.id).where(Shipment.order_id == order_id, Shipment.seller_id == seller_id)
        )
        return result.first() is not None

    @staticmethod
    async def list_for_order(db: AsyncSession, order_id: int) -> List[Shipment]:
        result = await db.execute(
            select(Shipment)
            .where(Shipment.order_id == order_id)
            .order_by(Shipment.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_for_seller(db: AsyncSession, seller_id: str) -> List[Shipment]:
        result = await db.execute(
            select(Shipment)
            .where(Shipment.seller_id == seller_id)
            .order_by(Shipment.created_at.desc(), Shipment.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def advance(
        db: AsyncSession,
        shipment_id: int,
        new_status: ShipmentStatus,
        expected_status: ShipmentStatus,
    ) -> bool:
        """Compare-and-set on status; a double submit loses here instead of writing twice."""
        result = await db.execute(
            update(Shipment)
            .where(Shipment.id == shipment_id, Shipment.status == expected_status.value)
            .values(**_status_values(new_status))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def force_status(db: AsyncSession, shipment_id: int, new_status: ShipmentStatus) -> None:
        await db.execute(
            update(Shipment)
            .where(Shipment.id == shipment_id)
            .values(**_status_values(new_status))
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def add_event(db: AsyncSession, event: ShipmentEvent) -> ShipmentEvent:
        db.add(event)
        await db.flush()
        return event
