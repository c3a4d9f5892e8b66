from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class ShippingDetails(BaseModel):
    shipping_name: Optional[str] = Field(default=None, max_length=255)
    shipping_phone: Optional[str] = Field(default=None, max_length=32)
    shipping_email: Optional[EmailStr] = None
    shipping_address_line1: Optional[str] = Field(default=None, max_length=255)
    shipping_address_line2: Optional[str] = Field(default=None, max_length=255)
    shipping_city: Optional[str] = Field(default=None, max_length=128)
    shipping_notes: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    seller_id: str
    product_id: int
    variant_id: int
    quantity: int
    price_snapshot: Decimal

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    buyer_id: str
    status: str
    total_amount: Decimal
    created_at: datetime
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderResponse):
    shipping_name: Optional[str] = None
    shipping_phone: Optional[str] = None
    shipping_email: Optional[str] = None
    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_notes: Optional[str] = None


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]


class SellerOrderItemResponse(BaseModel):
    id: int
    order_id: int
    product_id: int
    variant_id: int
    quantity: int
    price_snapshot: Decimal

    class Config:
        from_attributes = True


class SellerOrderListResponse(BaseModel):
    order_items: List[SellerOrderItemResponse]


class SellerOrderDetailResponse(BaseModel):
    order_id: int
    status: str
    created_at: datetime
    items: List[SellerOrderItemResponse]
