from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Cart, CartItem


class CartRepository:
    @staticmethod
    async def get_by_buyer(db: AsyncSession, buyer_id: str) -> Optional[Cart]:
        result = await db.execute(
            select(Cart)
            .where(Cart.buyer_id == buyer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_or_create(db: AsyncSession, buyer_id: str) -> Cart:
        cart = await CartRepository.get_by_buyer(db, buyer_id)
        if cart:
            return cart
        cart = Cart(buyer_id=buyer_id)
        db.add(cart)
        await db.flush()
        return cart

    @staticmethod
    async def add_item(db: AsyncSession, cart: Cart, variant_id: int, quantity: int) -> None:
        result = await db.execute(
            select(CartItem)
            .where(CartItem.cart_id == cart.id)
            .where(CartItem.variant_id == variant_id)
        )
        existing_item = result.scalars().first()

        if existing_item:
            existing_item.quantity += quantity
        else:
            db.add(CartItem(cart_id=cart.id, variant_id=variant_id, quantity=quantity))
        await db.flush()

    @staticmethod
    async def remove_item(db: AsyncSession, cart_id: int, variant_id: int) -> int:
        result = await db.execute(
            delete(CartItem).where(CartItem.cart_id == cart_id, CartItem.variant_id == variant_id)
        )
        return result.rowcount

    @staticmethod
    async def clear(db: AsyncSession, cart_id: int) -> None:
        """Deletes all items of the cart. The caller owns the commit."""
        await db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
