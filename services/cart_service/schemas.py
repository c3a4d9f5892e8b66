from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field


class CartItemCreate(BaseModel):
    variant_id: int
    quantity: int = Field(gt=0)


class CartLineResponse(BaseModel):
    variant_id: int
    product_id: int
    title: str
    quantity: int
    unit_price: Decimal
    available_stock: int


class CartResponse(BaseModel):
    buyer_id: str
    items: List[CartLineResponse] = []
    subtotal: Decimal = Decimal("0")
