from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .models import PaymentProvider


class PaymentInitiate(BaseModel):
    order_id: int
    provider: PaymentProvider = PaymentProvider.MOCK


class PaymentInitiateResponse(BaseModel):
    payment_id: int
    order_id: int
    provider: str
    provider_order_id: str
    amount: Decimal
    currency: str
    status: str
    checkout: Dict[str, Any]


class PaymentEventResponse(BaseModel):
    id: int
    type: str
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    order_id: int
    buyer_id: str
    provider: str
    provider_order_id: str
    provider_payment_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
    created_at: datetime
    events: List[PaymentEventResponse] = []

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]


class WebhookAck(BaseModel):
    status: str
    outcome: str


class SettlementResponse(BaseModel):
    id: int
    seller_id: str
    order_item_id: int
    amount: Decimal
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class SettlementListResponse(BaseModel):
    settlements: List[SettlementResponse]
