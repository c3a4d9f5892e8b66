from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import ShipmentStatus


class ShipmentCreate(BaseModel):
    carrier: str = Field(min_length=1, max_length=100)
    tracking_number: str = Field(min_length=1, max_length=100, pattern=r"^[a-zA-Z0-9_-]+$")


class ShipmentStatusUpdate(BaseModel):
    status: ShipmentStatus
    note: Optional[str] = None


class ShipmentOverride(BaseModel):
    status: ShipmentStatus
    note: str = Field(min_length=1)  # reason is mandatory for overrides


class ShipmentEventResponse(BaseModel):
    id: int
    shipment_id: int
    status: str
    note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ShipmentResponse(BaseModel):
    id: int
    order_id: int
    seller_id: str
    carrier: str
    tracking_number: str
    status: str
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    events: List[ShipmentEventResponse] = []

    class Config:
        from_attributes = True


class ShipmentListResponse(BaseModel):
    shipments: List[ShipmentResponse]


class TrackingShipment(BaseModel):
    id: int
    carrier: str
    tracking_number: str
    status: str
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    events: List[ShipmentEventResponse] = []

    class Config:
        from_attributes = True


class TrackingResponse(BaseModel):
    order_id: int
    status: str
    shipments: List[TrackingShipment]


class SyncResponse(BaseModel):
    order_id: int
    status: str
    changed: bool
