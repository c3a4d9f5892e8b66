from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Inventory, InventoryMovement, Variant


class InventoryRepository:

    @staticmethod
    async def get_variant(db: AsyncSession, variant_id: int) -> Optional[Variant]:
        result = await db.execute(select(Variant).where(Variant.id == variant_id))
        return result.scalars().first()

    @staticmethod
    async def get_variants(db: AsyncSession, variant_ids: Iterable[int]) -> Dict[int, Variant]:
        ids = list(set(variant_ids))
        if not ids:
            return {}
        result = await db.execute(
            select(Variant)
            .where(Variant.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        return {variant.id: variant for variant in result.scalars().all()}

    @staticmethod
    async def get_stock(db: AsyncSession, variant_id: int) -> int:
        result = await db.execute(select(Inventory.stock).where(Inventory.variant_id == variant_id))
        stock = result.scalar_one_or_none()
        return stock if stock is not None else 0

    @staticmethod
    async def decrement_if_available(db: AsyncSession, variant_id: int, quantity: int) -> bool:
        """Conditional decrement: never takes stock below zero.

        Returns False when the row holds less than ``quantity``; the check and
        the write are one statement, so concurrent checkouts cannot both pass.
        """
        result = await db.execute(
            update(Inventory)
            .where(Inventory.variant_id == variant_id, Inventory.stock >= quantity)
            .values(stock=Inventory.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def add_movement(db: AsyncSession, movement: InventoryMovement) -> InventoryMovement:
        db.add(movement)
        await db.flush()
        return movement

    @staticmethod
    async def movements_for_order(db: AsyncSession, order_id: int) -> List[InventoryMovement]:
        result = await db.execute(
            select(InventoryMovement)
            .where(InventoryMovement.order_id == order_id)
            .order_by(InventoryMovement.id)
        )
        return list(result.scalars().all())
