from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InsufficientStockError

from .models import InventoryMovement, MovementType, Variant
from .repository import InventoryRepository


@dataclass(frozen=True)
class StockLine:
    """One cart line priced and attributed at the moment of checkout."""

    variant_id: int
    product_id: int
    seller_id: str
    quantity: int
    unit_price: Decimal


class InventoryLedger:

    async def load_variants(self, db: AsyncSession, variant_ids: List[int]) -> Dict[int, Variant]:
        return await InventoryRepository.get_variants(db, variant_ids)

    async def reserve(self, db: AsyncSession, order_id: int, lines: List[StockLine]) -> None:
        """Decrement stock for every line and record a RESERVE movement.

        Must run inside the caller's transaction: a line that no longer fits
        raises ``InsufficientStockError`` and the caller rolls back the
        decrements already applied for earlier lines.
        """
        for line in lines:
            # 1. Deduct (check and write in one statement)
            reserved = await InventoryRepository.decrement_if_available(db, line.variant_id, line.quantity)
            if not reserved:
                available = await InventoryRepository.get_stock(db, line.variant_id)
                raise InsufficientStockError(
                    "Insufficient stock",
                    details=[{
                        "variant_id": line.variant_id,
                        "requested": line.quantity,
                        "available": available,
                    }],
                )

            # 2. Movement
            await InventoryRepository.add_movement(db, InventoryMovement(
                variant_id=line.variant_id,
                order_id=order_id,
                quantity=line.quantity,
                type=MovementType.RESERVE.value,
            ))
