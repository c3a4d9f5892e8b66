"""
Payment endpoints.

Initiation and the read views need a bearer token. The webhook route is
public: gateways cannot authenticate with our JWTs, so the HMAC signature in
the provider's header is the only credential it accepts.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import Actor, Role, require_roles

from .schemas import (
    PaymentInitiate,
    PaymentInitiateResponse,
    PaymentListResponse,
    SettlementListResponse,
    WebhookAck,
)
from .service import PaymentProcessor

router = APIRouter(tags=["Payments"])
public_router = APIRouter()

buyer_only = require_roles(Role.BUYER)
seller_only = require_roles(Role.SELLER)


def get_payment_processor(request: Request) -> PaymentProcessor:
    return request.app.state.container.payments


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


@public_router.post("/webhook/{provider}", response_model=WebhookAck)
async def payment_webhook(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    payments: PaymentProcessor = Depends(get_payment_processor),
):
    # Signatures cover the exact bytes received, so parse only after verifying
    raw_body = await request.body()
    gateway = payments.gateways.get(provider)
    signature = request.headers.get(gateway.signature_header)
    return await payments.apply_webhook(db, provider, raw_body, signature)


@router.post("/", response_model=PaymentInitiateResponse, status_code=201)
async def initiate_payment(
    body: PaymentInitiate,
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    payments: PaymentProcessor = Depends(get_payment_processor),
):
    return await payments.initiate(db, actor.id, body.order_id, body.provider.value)


@router.get("/orders/{order_id}", response_model=PaymentListResponse)
async def get_order_payments(
    order_id: int,
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    payments: PaymentProcessor = Depends(get_payment_processor),
):
    return await payments.get_order_payments(db, actor.id, order_id)


@router.get("/settlements/me", response_model=SettlementListResponse)
async def my_settlements(
    actor: Actor = Depends(seller_only),
    db: AsyncSession = Depends(get_db),
    payments: PaymentProcessor = Depends(get_payment_processor),
):
    return await payments.list_seller_settlements(db, actor.id)
