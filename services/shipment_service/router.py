from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import Actor, Role, require_roles, verify_internal_api_key

from .schemas import (
    ShipmentCreate,
    ShipmentListResponse,
    ShipmentResponse,
    ShipmentStatusUpdate,
    SyncResponse,
    TrackingResponse,
)
from .service import ShipmentTracker

router = APIRouter(tags=["Shipments"])
public_router = APIRouter()
# Service-to-service only
internal_router = APIRouter(prefix="/internal", dependencies=[Depends(verify_internal_api_key)])

buyer_only = require_roles(Role.BUYER)
seller_only = require_roles(Role.SELLER)


def get_shipment_tracker(request: Request) -> ShipmentTracker:
    return request.app.state.container.shipments


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "shipment", "status": "running"}


@router.get("/seller", response_model=ShipmentListResponse)
async def list_my_shipments(
    actor: Actor = Depends(seller_only),
    db: AsyncSession = Depends(get_db),
    shipments: ShipmentTracker = Depends(get_shipment_tracker),
):
    return await shipments.seller_shipments(db, actor.id)


@router.post("/orders/{order_id}", response_model=ShipmentResponse, status_code=201)
async def create_shipment(
    order_id: int,
    body: ShipmentCreate,
    actor: Actor = Depends(seller_only),
    db: AsyncSession = Depends(get_db),
    shipments: ShipmentTracker = Depends(get_shipment_tracker),
):
    return await shipments.create(db, order_id, actor.id, body)


@router.put("/{shipment_id}/status", response_model=ShipmentResponse)
async def update_shipment_status(
    shipment_id: int,
    body: ShipmentStatusUpdate,
    actor: Actor = Depends(seller_only),
    db: AsyncSession = Depends(get_db),
    shipments: ShipmentTracker = Depends(get_shipment_tracker),
):
    return await shipments.update_status(db, shipment_id, actor.id, body.status, body.note)


@router.get("/orders/{order_id}/tracking", response_model=TrackingResponse)
async def get_tracking(
    order_id: int,
    actor: Actor = Depends(buyer_only),
    db: AsyncSession = Depends(get_db),
    shipments: ShipmentTracker = Depends(get_shipment_tracker),
):
    return await shipments.get_tracking(db, order_id, actor.id)


@internal_router.post("/orders/{order_id}/sync", response_model=SyncResponse)
async def resync_order_status(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    shipments: ShipmentTracker = Depends(get_shipment_tracker),
):
    return await shipments.resync(db, order_id)
