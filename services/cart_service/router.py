from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import Actor, Role, require_roles

from .schemas import CartItemCreate, CartResponse
from .service import CartService

router = APIRouter(tags=["Cart"])
public_router = APIRouter()  # For any public endpoints (e.g. health check)

buyer_only = require_roles(Role.BUYER)


def get_cart_service(request: Request) -> CartService:
    return request.app.state.container.carts


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "cart", "status": "running"}


@router.get("/", response_model=CartResponse)
async def get_cart(
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    carts: CartService = Depends(get_cart_service),
):
    return await carts.get_cart(db, actor.id)


@router.post("/items", response_model=CartResponse)
async def add_item(
    item: CartItemCreate,
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    carts: CartService = Depends(get_cart_service),
):
    return await carts.add_item(db, actor.id, item)


@router.delete("/items/{variant_id}", response_model=CartResponse)
async def remove_item(
    variant_id: int,
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    carts: CartService = Depends(get_cart_service),
):
    return await carts.remove_item(db, actor.id, variant_id)
