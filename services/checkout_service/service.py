"""
Checkout: turns the buyer's cart into a PLACED order.

Validation, order creation, stock reservation and cart clearing are a single
transaction. Stock and prices are re-read from the variants, never taken
from the cart. A checkout that fails leaves stock, orders and the cart
exactly as they were. Only cache invalidation and notifications happen after
the commit, and neither can fail the checkout.
"""
from collections import Counter
from decimal import Decimal
from typing import Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.cart_service.repository import CartRepository
from services.inventory_service.service import InventoryLedger, StockLine
from services.order_service.models import Order, OrderItem, OrderStatus
from services.order_service.repository import OrderRepository
from services.order_service.schemas import OrderDetailResponse, ShippingDetails
from shared.cache import CacheKeys, CacheStore
from shared.config.database import transaction
from shared.errors import InsufficientStockError, ValidationError
from shared.notifications import NotificationKind, Notifier
from shared.observability import mkt_checkout_duration_seconds, mkt_checkout_total

logger = structlog.get_logger(__name__)


class CheckoutOrchestrator:
    def __init__(
        self,
        inventory: InventoryLedger,
        notifier: Notifier,
        cache: CacheStore,
        shipping_fee: Decimal = Decimal("180"),
    ):
        self.inventory = inventory
        self.notifier = notifier
        self.cache = cache
        self.shipping_fee = shipping_fee

    async def checkout(
        self,
        db: AsyncSession,
        buyer_id: str,
        shipping: Optional[ShippingDetails] = None,
    ) -> OrderDetailResponse:
        with mkt_checkout_duration_seconds.time():
            try:
                order = await self._place_order(db, buyer_id, shipping)
            except Exception:
                mkt_checkout_total.labels(status="failed").inc()
                raise
        mkt_checkout_total.labels(status="success").inc()

        logger.info(
            "checkout_completed",
            order_id=order.id,
            buyer_id=buyer_id,
            total_amount=str(order.total_amount),
            item_count=len(order.items),
        )
        await self._after_commit(order)
        return OrderDetailResponse.model_validate(order)

    async def _price_lines(self, db: AsyncSession, cart_items) -> List[StockLine]:
        variants = await self.inventory.load_variants(db, [item.variant_id for item in cart_items])

        problems: List[Dict] = []
        lines: List[StockLine] = []
        for item in cart_items:
            variant = variants.get(item.variant_id)
            if variant is None or not variant.product.is_active:
                problems.append({"variant_id": item.variant_id, "requested": item.quantity, "available": 0})
                continue

            available = variant.inventory.stock if variant.inventory else 0
            if item.quantity > available:
                problems.append({"variant_id": variant.id, "requested": item.quantity, "available": available})
                continue

            lines.append(StockLine(
                variant_id=variant.id,
                product_id=variant.product_id,
                seller_id=variant.product.seller_id,
                quantity=item.quantity,
                unit_price=Decimal(variant.price),
            ))

        if problems:
            raise InsufficientStockError("Insufficient stock", details=problems)
        return lines

    async def _place_order(self, db: AsyncSession, buyer_id: str, shipping: Optional[ShippingDetails]) -> Order:
        async with transaction(db):
            cart = await CartRepository.get_by_buyer(db, buyer_id)
            if not cart or not cart.items:
                raise ValidationError("Cart is empty")

            # 1. Current stock and price for every line
            lines = await self._price_lines(db, cart.items)

            # 2. Order + items, prices frozen
            subtotal = sum((line.unit_price * line.quantity for line in lines), Decimal("0"))
            order = await OrderRepository.create_order(db, Order(
                buyer_id=buyer_id,
                status=OrderStatus.PLACED.value,
                total_amount=subtotal + self.shipping_fee,
                items=[
                    OrderItem(
                        seller_id=line.seller_id,
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        quantity=line.quantity,
                        price_snapshot=line.unit_price,
                    )
                    for line in lines
                ],
                **(shipping.model_dump() if shipping else {}),
            ))

            # 3. Conditional decrements; a checkout racing us for the last units fails here
            await self.inventory.reserve(db, order.id, lines)

            # 4. Cart
            await CartRepository.clear(db, cart.id)

        return order

    async def _after_commit(self, order: Order) -> None:
        product_keys = {CacheKeys.product_detail(item.product_id) for item in order.items}
        await self.cache.invalidate(
            CacheKeys.cart(order.buyer_id),
            CacheKeys.buyer_orders(order.buyer_id),
            CacheKeys.ADMIN_ORDERS,
            CacheKeys.PRODUCTS_LIST,
            *sorted(product_keys),
        )

        await self.notifier.notify(
            NotificationKind.ORDER_PLACED,
            order.buyer_id,
            {"orderId": order.id, "totalAmount": str(order.total_amount)},
        )
        for seller_id, item_count in sorted(Counter(item.seller_id for item in order.items).items()):
            await self.notifier.notify(
                NotificationKind.SELLER_NEW_ORDER,
                seller_id,
                {"orderId": order.id, "itemCount": item_count},
            )
