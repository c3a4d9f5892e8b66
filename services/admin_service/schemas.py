from typing import List

from pydantic import BaseModel

from services.order_service.schemas import OrderResponse


class AdminOrderListResponse(BaseModel):
    orders: List[OrderResponse]


class OrderActionResponse(BaseModel):
    message: str
    order: OrderResponse
