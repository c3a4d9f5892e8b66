from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from shared.config.database import Base, utcnow


class MovementType(str, Enum):
    RESERVE = "RESERVE"


class Product(Base):
    """Read model of the catalog; catalog CRUD lives outside this cluster."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Variant(Base):
    __tablename__ = "variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    sku = Column(String(64), nullable=False, unique=True)
    price = Column(Numeric(12, 2), nullable=False)

    product = relationship("Product", lazy="selectin")
    inventory = relationship("Inventory", uselist=False, lazy="selectin")


class Inventory(Base):
    __tablename__ = "inventory"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_inventory_stock_non_negative"),)

    variant_id = Column(Integer, ForeignKey("variants.id"), primary_key=True)
    stock = Column(Integer, nullable=False, default=0)


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("variants.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
