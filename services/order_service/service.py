"""
Order views for buyers and sellers.

Buyer views go through the cache; seller views do not (they change with every
shipment). Nothing here mutates an order: status is written only by the
payment processor, the shipment synchronizer and admin actions.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from shared.cache import CacheKeys, CacheStore
from shared.errors import ForbiddenError, NotFoundError

from .repository import OrderRepository
from .schemas import (
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    SellerOrderDetailResponse,
    SellerOrderItemResponse,
    SellerOrderListResponse,
)


class OrderService:
    def __init__(self, cache: CacheStore, ttl: int):
        self.cache = cache
        self.ttl = ttl

    # BUYER

    async def list_buyer_orders(self, db: AsyncSession, buyer_id: str) -> OrderListResponse:
        key = CacheKeys.buyer_orders(buyer_id)
        cached = await self.cache.get(key)
        if cached:
            return OrderListResponse.model_validate(cached)

        orders = await OrderRepository.list_by_buyer(db, buyer_id)
        response = OrderListResponse(orders=[OrderResponse.model_validate(o) for o in orders])
        await self.cache.set(key, response.model_dump(mode="json"), self.ttl)
        return response

    async def get_buyer_order(self, db: AsyncSession, order_id: int, buyer_id: str) -> OrderDetailResponse:
        key = CacheKeys.order_detail(order_id)
        cached = await self.cache.get(key)
        if cached and cached.get("buyer_id") == buyer_id:
            return OrderDetailResponse.model_validate(cached)

        order = await OrderRepository.get_buyer_order(db, order_id, buyer_id)
        if not order:
            raise NotFoundError("Order not found")

        response = OrderDetailResponse.model_validate(order)
        await self.cache.set(key, response.model_dump(mode="json"), self.ttl)
        return response

    # SELLER

    async def list_seller_orders(self, db: AsyncSession, seller_id: str) -> SellerOrderListResponse:
        items = await OrderRepository.seller_items(db, seller_id)
        return SellerOrderListResponse(
            order_items=[SellerOrderItemResponse.model_validate(item) for item in items]
        )

    async def get_seller_order(self, db: AsyncSession, order_id: int, seller_id: str) -> SellerOrderDetailResponse:
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise NotFoundError("Order not found")

        items = await OrderRepository.seller_items(db, seller_id, order_id=order_id)
        if not items:
            raise ForbiddenError("No items in this order belong to you")

        return SellerOrderDetailResponse(
            order_id=order.id,
            status=order.status,
            created_at=order.created_at,
            items=[SellerOrderItemResponse.model_validate(item) for item in items],
        )
