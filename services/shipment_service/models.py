from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from shared.config.database import Base, utcnow


class ShipmentStatus(str, Enum):
    CREATED = "CREATED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"


SHIPMENT_RANK = {
    ShipmentStatus.CREATED: 0,
    ShipmentStatus.SHIPPED: 1,
    ShipmentStatus.DELIVERED: 2,
}

# The only edges a seller may take; admins bypass this table.
FORWARD_TRANSITIONS = {
    ShipmentStatus.SHIPPED: ShipmentStatus.CREATED,
    ShipmentStatus.DELIVERED: ShipmentStatus.SHIPPED,
}


class Shipment(Base):
    __tablename__ = "shipments"
    __table_args__ = (UniqueConstraint("order_id", "seller_id", name="uq_shipments_order_seller"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    seller_id = Column(String(64), nullable=False, index=True)
    carrier = Column(String(100), nullable=False)
    tracking_number = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=ShipmentStatus.CREATED.value)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    events = relationship("ShipmentEvent", lazy="selectin", order_by="ShipmentEvent.id")


class ShipmentEvent(Base):
    __tablename__ = "shipment_events"

    id = Column(Integer, primary_key=True, index=True)
    shipment_id = Column(Integer, ForeignKey("shipments.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
