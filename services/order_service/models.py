from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from shared.config.database import Base, utcnow


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Forward order of the fulfilment path; CANCELLED sits outside it.
STATUS_RANK = {
    OrderStatus.PLACED: 0,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.DELIVERED: 3,
}


def statuses_below(target: OrderStatus):
    """Statuses from which ``target`` is a forward move."""
    return [status.value for status, rank in STATUS_RANK.items() if rank < STATUS_RANK[target]]


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(String(64), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PLACED.value, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False)  # fixed at creation

    shipping_name = Column(String(255), nullable=True)
    shipping_phone = Column(String(32), nullable=True)
    shipping_email = Column(String(255), nullable=True)
    shipping_address_line1 = Column(String(255), nullable=True)
    shipping_address_line2 = Column(String(255), nullable=True)
    shipping_city = Column(String(128), nullable=True)
    shipping_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    seller_id = Column(String(64), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    variant_id = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    price_snapshot = Column(Numeric(12, 2), nullable=False)  # unit price frozen at checkout

    order = relationship("Order", back_populates="items")
