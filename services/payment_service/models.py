from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from shared.config.database import Base, utcnow


class PaymentProvider(str, Enum):
    MOCK = "MOCK"
    RAZORPAY = "RAZORPAY"


class PaymentStatus(str, Enum):
    INITIATED = "INITIATED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# A gateway may still capture after reporting a failed attempt on the same order id
CAPTURABLE_PAYMENT_STATUSES = (PaymentStatus.INITIATED, PaymentStatus.FAILED)


class PaymentEventType(str, Enum):
    WEBHOOK = "WEBHOOK"
    FAILED = "FAILED"


class SettlementStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    buyer_id = Column(String(64), nullable=False)
    provider = Column(String(20), nullable=False)
    provider_order_id = Column(String(128), nullable=False, unique=True, index=True)  # webhook correlation key
    provider_payment_id = Column(String(128), nullable=True)
    provider_signature = Column(Text, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.INITIATED.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    events = relationship("PaymentEvent", lazy="selectin", order_by="PaymentEvent.id")


class PaymentEvent(Base):
    """Append-only: one row per accepted webhook delivery."""

    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class SellerSettlement(Base):
    __tablename__ = "seller_settlements"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(String(64), nullable=False, index=True)
    # unique: exactly one settlement per order line, even if two deliveries race
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=SettlementStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
