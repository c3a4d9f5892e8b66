from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Integer, String

from shared.config.database import Base, utcnow


class AuditEntityType(str, Enum):
    ORDER = "ORDER"
    PAYMENT = "PAYMENT"
    SHIPMENT = "SHIPMENT"


class AuditAction(str, Enum):
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_FORCE_CONFIRMED = "ORDER_FORCE_CONFIRMED"
    SHIPMENT_STATUS_OVERRIDE = "SHIPMENT_STATUS_OVERRIDE"


class AuditLog(Base):
    """Append-only. Rows are never updated or deleted."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String(64), nullable=False, index=True)
    action = Column(String(64), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(64), nullable=False)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
