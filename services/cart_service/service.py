from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from shared.cache import CacheKeys, CacheStore
from shared.config.database import transaction
from shared.errors import NotFoundError
from services.inventory_service.repository import InventoryRepository

from .repository import CartRepository
from .schemas import CartItemCreate, CartLineResponse, CartResponse


class CartService:
    def __init__(self, cache: CacheStore, ttl: int):
        self.cache = cache
        self.ttl = ttl

    async def get_cart(self, db: AsyncSession, buyer_id: str) -> CartResponse:
        cached = await self.cache.get(CacheKeys.cart(buyer_id))
        if cached:
            return CartResponse.model_validate(cached)

        cart = await CartRepository.get_by_buyer(db, buyer_id)
        if not cart or not cart.items:
            return CartResponse(buyer_id=buyer_id)

        variants = await InventoryRepository.get_variants(db, [item.variant_id for item in cart.items])
        lines = []
        for item in cart.items:
            variant = variants.get(item.variant_id)
            if variant is None:
                continue
            lines.append(CartLineResponse(
                variant_id=variant.id,
                product_id=variant.product_id,
                title=variant.product.title,
                quantity=item.quantity,
                unit_price=variant.price,
                available_stock=variant.inventory.stock if variant.inventory else 0,
            ))

        response = CartResponse(
            buyer_id=buyer_id,
            items=lines,
            subtotal=sum((line.unit_price * line.quantity for line in lines), Decimal("0")),
        )
        await self.cache.set(CacheKeys.cart(buyer_id), response.model_dump(mode="json"), self.ttl)
        return response

    async def add_item(self, db: AsyncSession, buyer_id: str, data: CartItemCreate) -> CartResponse:
        async with transaction(db):
            variant = await InventoryRepository.get_variant(db, data.variant_id)
            if not variant or not variant.product.is_active:
                raise NotFoundError("Product variant not found")
            cart = await CartRepository.get_or_create(db, buyer_id)
            await CartRepository.add_item(db, cart, data.variant_id, data.quantity)

        await self.cache.invalidate(CacheKeys.cart(buyer_id))
        return await self.get_cart(db, buyer_id)

    async def remove_item(self, db: AsyncSession, buyer_id: str, variant_id: int) -> CartResponse:
        async with transaction(db):
            cart = await CartRepository.get_by_buyer(db, buyer_id)
            removed = await CartRepository.remove_item(db, cart.id, variant_id) if cart else 0
            if not removed:
                raise NotFoundError("Item not in cart")

        await self.cache.invalidate(CacheKeys.cart(buyer_id))
        return await self.get_cart(db, buyer_id)
