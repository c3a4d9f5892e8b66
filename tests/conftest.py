"""
Shared fixtures.

Every test gets its own SQLite file database and a fully built container
(in-memory cache, recording notification sink, mock gateway). Service-level
helpers open a fresh session per call, the same way a request would.
"""
import json
import os
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

# Must be set before ``main`` builds its module-level app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-import.db")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ.setdefault("MOCK_WEBHOOK_SECRET", "test-webhook-secret")

import httpx
import pytest
import pytest_asyncio

from main import build_container, create_app
from services.cart_service.schemas import CartItemCreate
from services.inventory_service.models import Inventory, Product, Variant
from services.order_service.schemas import ShippingDetails
from shared.cache import InMemoryCache
from shared.config.database import create_schema
from shared.config.settings import Settings
from shared.notifications import NotificationKind, NotificationSink
from shared.security import create_access_token, limiter

JWT_SECRET = "test-jwt-secret"
INTERNAL_KEY = "test-internal-key"
WEBHOOK_SECRET = "test-webhook-secret"


class RecordingSink(NotificationSink):
    def __init__(self):
        self.sent: List[Tuple[NotificationKind, str, Dict[str, Any]]] = []
        self.fail = False

    async def send(self, kind, user_id, context):
        if self.fail:
            raise RuntimeError("notification backend unavailable")
        self.sent.append((kind, user_id, context))

    def of_kind(self, kind: NotificationKind):
        return [(user_id, context) for sent_kind, user_id, context in self.sent if sent_kind == kind]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}",
        jwt_secret_key=JWT_SECRET,
        internal_api_key=INTERNAL_KEY,
        mock_webhook_secret=WEBHOOK_SECRET,
        metrics_enabled=False,
        tracing_enabled=False,
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest_asyncio.fixture
async def container(settings, sink, cache):
    container = build_container(settings, cache=cache, notification_sink=sink)
    await create_schema(container.engine)
    yield container
    await container.close()


@pytest_asyncio.fixture
async def client(container):
    app = create_app(container=container)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


def auth_headers(user_id: str, role: str = "BUYER") -> Dict[str, str]:
    token = create_access_token({"sub": user_id, "role": role}, JWT_SECRET)
    return {"Authorization": f"Bearer {token}"}


# --- Seeding / flow helpers ---

async def seed_variant(
    container,
    seller_id: str,
    price: str,
    stock: int,
    title: Optional[str] = None,
    is_active: bool = True,
) -> int:
    async with container.sessionmaker() as db:
        product = Product(seller_id=seller_id, title=title or f"Product of {seller_id}", is_active=is_active)
        db.add(product)
        await db.flush()
        variant = Variant(product_id=product.id, sku=f"SKU-{uuid.uuid4().hex[:10]}", price=Decimal(price))
        db.add(variant)
        await db.flush()
        db.add(Inventory(variant_id=variant.id, stock=stock))
        await db.commit()
        return variant.id


async def stock_of(container, variant_id: int) -> int:
    async with container.sessionmaker() as db:
        inventory = await db.get(Inventory, variant_id, populate_existing=True)
        return inventory.stock


async def add_to_cart(container, buyer_id: str, variant_id: int, quantity: int):
    async with container.sessionmaker() as db:
        return await container.carts.add_item(db, buyer_id, CartItemCreate(variant_id=variant_id, quantity=quantity))


async def checkout(container, buyer_id: str, shipping: Optional[ShippingDetails] = None):
    async with container.sessionmaker() as db:
        return await container.checkout.checkout(db, buyer_id, shipping)


async def place_order(container, buyer_id: str, lines: List[Tuple[int, int]]):
    for variant_id, quantity in lines:
        await add_to_cart(container, buyer_id, variant_id, quantity)
    return await checkout(container, buyer_id)


async def initiate_payment(container, buyer_id: str, order_id: int, provider: str = "MOCK"):
    async with container.sessionmaker() as db:
        return await container.payments.initiate(db, buyer_id, order_id, provider)


def mock_webhook(provider_order_id: str, event: str = "payment.captured", payment_id: str = "pay_1") -> bytes:
    return json.dumps({
        "event": event,
        "provider_order_id": provider_order_id,
        "provider_payment_id": payment_id,
    }).encode()


async def deliver_webhook(container, raw_body: bytes, signature: Optional[str] = None, provider: str = "MOCK"):
    gateway = container.gateways.get(provider)
    if signature is None:
        signature = gateway.sign(raw_body)
    async with container.sessionmaker() as db:
        return await container.payments.apply_webhook(db, provider, raw_body, signature)


async def paid_order(container, buyer_id: str, lines: List[Tuple[int, int]]):
    """Checkout + mock payment captured; returns the order response."""
    order = await place_order(container, buyer_id, lines)
    intent = await initiate_payment(container, buyer_id, order.id)
    await deliver_webhook(container, mock_webhook(intent.provider_order_id))
    return order


async def create_shipment(container, order_id: int, seller_id: str, tracking_number: Optional[str] = None):
    from services.shipment_service.schemas import ShipmentCreate

    async with container.sessionmaker() as db:
        return await container.shipments.create(db, order_id, seller_id, ShipmentCreate(
            carrier="BlueDart",
            tracking_number=tracking_number or f"TRK-{uuid.uuid4().hex[:8]}",
        ))


async def set_shipment_status(container, shipment_id: int, seller_id: str, status: str, note: Optional[str] = None):
    async with container.sessionmaker() as db:
        return await container.shipments.update_status(db, shipment_id, seller_id, status, note)


async def order_status(container, order_id: int) -> str:
    from services.order_service.repository import OrderRepository

    async with container.sessionmaker() as db:
        order = await OrderRepository.get_order(db, order_id)
        return order.status
