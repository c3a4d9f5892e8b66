from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import Actor, Role, require_roles

from .schemas import (
    OrderDetailResponse,
    OrderListResponse,
    SellerOrderDetailResponse,
    SellerOrderListResponse,
)
from .service import OrderService

router = APIRouter(tags=["Orders"])
public_router = APIRouter()

buyer_only = require_roles(Role.BUYER)
seller_only = require_roles(Role.SELLER)


def get_order_service(request: Request) -> OrderService:
    return request.app.state.container.orders


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@router.get("/", response_model=OrderListResponse)
async def list_my_orders(
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    orders: OrderService = Depends(get_order_service),
):
    return await orders.list_buyer_orders(db, actor.id)


@router.get("/seller", response_model=SellerOrderListResponse)
async def list_seller_orders(
    actor: Actor = Depends(seller_only),
    db: AsyncSession = Depends(get_db),
    orders: OrderService = Depends(get_order_service),
):
    return await orders.list_seller_orders(db, actor.id)


@router.get("/seller/{order_id}", response_model=SellerOrderDetailResponse)
async def get_seller_order(
    order_id: int,
    actor: Actor = Depends(seller_only),
    db: AsyncSession = Depends(get_db),
    orders: OrderService = Depends(get_order_service),
):
    return await orders.get_seller_order(db, order_id, actor.id)


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_my_order(
    order_id: int,
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    orders: OrderService = Depends(get_order_service),
):
    return await orders.get_buyer_order(db, order_id, actor.id)
