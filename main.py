"""
Marketplace cluster entry point.

Everything with state (engine, cache, gateways, services) is built once by
``build_container`` and handed to every mounted service app through
``app.state.container``. Nothing is constructed at import time of the
service modules.
"""
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from shared.cache import CacheStore, InMemoryCache, RedisCache
from shared.config.database import build_engine, build_sessionmaker, create_schema
from shared.config.settings import Settings
from shared.notifications import HttpNotificationSink, LogNotificationSink, NotificationSink, Notifier
from shared.observability import setup_process_observability

# IMPORTANT: import models so they register with Base
from services.inventory_service import models as inventory_models
from services.cart_service import models as cart_models
from services.order_service import models as order_models
from services.payment_service import models as payment_models
from services.shipment_service import models as shipment_models
from services.audit_service import models as audit_models

from services.admin_service.main import create_admin_app
from services.admin_service.service import AdminService
from services.audit_service.service import AuditLogger
from services.cart_service.main import create_cart_app
from services.cart_service.service import CartService
from services.checkout_service.main import create_checkout_app
from services.checkout_service.service import CheckoutOrchestrator
from services.inventory_service.service import InventoryLedger
from services.order_service.main import create_order_app
from services.order_service.service import OrderService
from services.payment_service.gateways import GatewayRegistry, MockGateway, RazorpayGateway
from services.payment_service.main import create_payment_app
from services.payment_service.service import PaymentProcessor
from services.shipment_service.main import create_shipment_app
from services.shipment_service.service import ShipmentTracker
from services.shipment_service.synchronizer import OrderStatusSynchronizer

logger = structlog.get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: AsyncEngine
    sessionmaker: async_sessionmaker
    http_client: httpx.AsyncClient
    cache: CacheStore
    notifier: Notifier
    gateways: GatewayRegistry
    audit: AuditLogger
    synchronizer: OrderStatusSynchronizer
    inventory: InventoryLedger
    carts: CartService
    orders: OrderService
    checkout: CheckoutOrchestrator
    payments: PaymentProcessor
    shipments: ShipmentTracker
    admin: AdminService

    async def close(self) -> None:
        await self.gateways.close()
        await self.notifier.sink.close()
        await self.cache.close()
        await self.http_client.aclose()
        await self.engine.dispose()


def build_gateways(settings: Settings, http_client: httpx.AsyncClient) -> GatewayRegistry:
    gateways = [MockGateway(settings.mock_webhook_secret)]
    if settings.razorpay_configured:
        gateways.append(RazorpayGateway(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            webhook_secret=settings.razorpay_webhook_secret,
            client=http_client,
            api_url=settings.razorpay_api_url,
        ))
    return GatewayRegistry(gateways)


def build_container(
    settings: Settings,
    cache: Optional[CacheStore] = None,
    notification_sink: Optional[NotificationSink] = None,
    gateways: Optional[GatewayRegistry] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Container:
    engine = build_engine(settings.database_url, echo=settings.sql_echo)
    http_client = http_client or httpx.AsyncClient(timeout=settings.gateway_timeout_seconds)

    if cache is None:
        cache = RedisCache.from_url(settings.redis_url) if settings.redis_url else InMemoryCache()

    if notification_sink is None:
        if settings.notification_url:
            notification_sink = HttpNotificationSink(
                settings.notification_url,
                http_client,
                timeout=settings.notification_timeout_seconds,
            )
        else:
            notification_sink = LogNotificationSink()

    notifier = Notifier(notification_sink)
    gateways = gateways or build_gateways(settings, http_client)
    audit = AuditLogger()
    synchronizer = OrderStatusSynchronizer()
    inventory = InventoryLedger()
    payments = PaymentProcessor(
        gateways,
        notifier,
        cache,
        currency=settings.currency,
        gateway_timeout=settings.gateway_timeout_seconds,
    )

    return Container(
        settings=settings,
        engine=engine,
        sessionmaker=build_sessionmaker(engine),
        http_client=http_client,
        cache=cache,
        notifier=notifier,
        gateways=gateways,
        audit=audit,
        synchronizer=synchronizer,
        inventory=inventory,
        carts=CartService(cache, settings.cache_ttl_seconds),
        orders=OrderService(cache, settings.cache_ttl_seconds),
        checkout=CheckoutOrchestrator(inventory, notifier, cache, shipping_fee=settings.shipping_fee),
        payments=payments,
        shipments=ShipmentTracker(
            synchronizer,
            audit,
            notifier,
            cache,
            tracking_ttl=settings.tracking_cache_ttl_seconds,
        ),
        admin=AdminService(audit, payments, cache, settings.cache_ttl_seconds),
    )


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    if container is None:
        settings = settings or Settings.from_env()
        setup_process_observability(settings)
        container = build_container(settings)

    app = FastAPI(title="Marketplace Cluster")
    app.state.container = container
    app.state.settings = container.settings

    @app.on_event("startup")
    async def startup_event():
        await create_schema(container.engine)
        logger.info("cluster_started", gateways=container.gateways.providers)

    @app.on_event("shutdown")
    async def shutdown_event():
        await container.close()

    app.mount("/cart", create_cart_app(container))
    app.mount("/checkout", create_checkout_app(container))
    app.mount("/orders", create_order_app(container))
    app.mount("/payments", create_payment_app(container))
    app.mount("/shipments", create_shipment_app(container))
    app.mount("/admin", create_admin_app(container))
    return app


app = create_app()
