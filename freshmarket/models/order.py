# freshmarket/models/order.py
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from freshmarket.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "en_attente"
    PAID = "payee"
    PREPARING = "en_preparation"
    SHIPPED = "expediee"
    DELIVERED = "livree"
    CANCELLED = "annulee"


class PaymentStatus(str, enum.Enum):
    PENDING = "en_attente"
    SUCCEEDED = "reussi"
    FAILED = "echoue"


class PaymentMethod(str, enum.Enum):
    MTN = "mtn"
    MOOV = "moov"
    CARD = "cartes"
    CASH = "especes"


def _utcnow():
    return datetime.now(timezone.utc)


# An order placed by one buyer with one supplier.
# total is fixed at creation and never recomputed from the lines.
class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    subtotal = Column(Integer, nullable=False)
    delivery_fee = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False)

    status = Column(String, nullable=False, default=OrderStatus.PENDING.value, index=True)

    # Delivery address
    delivery_city = Column(String, nullable=True)
    delivery_district = Column(String, nullable=True)
    delivery_instructions = Column(String, nullable=True)
    delivery_phone = Column(String, nullable=True)

    # Payment sub-record
    payment_method = Column(String, nullable=True)
    payment_reference = Column(String, nullable=True, index=True)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    payment_amount = Column(Integer, nullable=True)
    payment_transaction_id = Column(String, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Buyer feedback once delivered
    buyer_rating = Column(Integer, nullable=True)
    buyer_comment = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    buyer = relationship("User", foreign_keys=[buyer_id])
    supplier = relationship("User", foreign_keys=[supplier_id])
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.id")
    history = relationship("OrderStatusHistory", back_populates="order", cascade="all, delete-orphan",
                           order_by="OrderStatusHistory.id")


# Snapshot of one ordered product at order time
class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    # Nulled if the listing is later deleted; the snapshot below stays
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    name = Column(String, nullable=False)
    unit_price = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    line_total = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")


# Append-only log of status changes
class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    comment = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    order = relationship("Order", back_populates="history")
