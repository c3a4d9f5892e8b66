from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.schemas import AuditLogListResponse
from services.audit_service.service import AuditLogger
from services.payment_service.schemas import PaymentListResponse, SettlementListResponse
from services.shipment_service.schemas import ShipmentOverride, ShipmentResponse, TrackingResponse
from services.shipment_service.service import ShipmentTracker
from shared.config.database import get_db
from shared.security import ADMIN_ROLES, Actor, Role, require_roles

from .schemas import AdminOrderListResponse, OrderActionResponse
from .service import AdminService

router = APIRouter(tags=["Admin"])
public_router = APIRouter()

admin_only = require_roles(*ADMIN_ROLES)
super_admin_only = require_roles(Role.SUPER_ADMIN)


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.container.admin


def get_shipment_tracker(request: Request) -> ShipmentTracker:
    return request.app.state.container.shipments


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.container.audit


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "admin", "status": "running"}


# --- ORDERS ---

@router.get("/orders", response_model=AdminOrderListResponse)
async def list_orders(
    actor: Actor = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
):
    return await admin.list_orders(db)


@router.post("/orders/{order_id}/cancel", response_model=OrderActionResponse)
async def cancel_order(
    order_id: int,
    actor: Actor = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
):
    return await admin.cancel_order(db, order_id, actor.id)


@router.post("/orders/{order_id}/force-confirm", response_model=OrderActionResponse)
async def force_confirm_order(
    order_id: int,
    actor: Actor = Depends(super_admin_only),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
):
    return await admin.force_confirm_order(db, order_id, actor.id)


@router.get("/orders/{order_id}/tracking", response_model=TrackingResponse)
async def order_tracking(
    order_id: int,
    actor: Actor = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    shipments: ShipmentTracker = Depends(get_shipment_tracker),
):
    return await shipments.admin_tracking(db, order_id)


# --- SHIPMENTS ---

@router.put("/shipments/{shipment_id}/override-status", response_model=ShipmentResponse)
async def override_shipment_status(
    shipment_id: int,
    body: ShipmentOverride,
    actor: Actor = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    shipments: ShipmentTracker = Depends(get_shipment_tracker),
):
    return await shipments.admin_override(db, shipment_id, actor.id, body.status, body.note)


# --- PAYMENTS ---

@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    actor: Actor = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
):
    return await admin.list_payments(db)


@router.get("/settlements", response_model=SettlementListResponse)
async def list_settlements(
    actor: Actor = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    admin: AdminService = Depends(get_admin_service),
):
    return await admin.list_settlements(db)


# --- AUDIT ---

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def get_audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=500),
    actor: Actor = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
):
    return await audit.get_audit_logs(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )


@router.get("/audit-logs/{entity_type}/{entity_id}", response_model=AuditLogListResponse)
async def get_entity_history(
    entity_type: str,
    entity_id: str,
    actor: Actor = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
):
    return await audit.get_entity_history(db, entity_type.upper(), entity_id)
