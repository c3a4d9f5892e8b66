from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.schemas import OrderDetailResponse, ShippingDetails
from shared.config.database import get_db
from shared.security import Actor, Role, limiter, require_roles

from .service import CheckoutOrchestrator

router = APIRouter(tags=["Checkout"])
public_router = APIRouter()

buyer_only = require_roles(Role.BUYER)


def get_checkout(request: Request) -> CheckoutOrchestrator:
    return request.app.state.container.checkout


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "checkout", "status": "running"}


@router.post("/", response_model=OrderDetailResponse, status_code=201)
@limiter.limit("10/minute")  # per user, or per IP when unauthenticated
async def checkout(
    request: Request,  # slowapi reads the key from the request
    shipping: Optional[ShippingDetails] = Body(default=None),
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout),
):
    return await orchestrator.checkout(db, actor.id, shipping)
