from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from bakery.db import Base

ORDER_STATUSES = ("pending", "confirmed", "processing", "completed", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


def _now():
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"
    id = Column(String(64), primary_key=True)
    customer_id = Column(String(64), ForeignKey("customers.id"), nullable=True, index=True)
    customer_phone = Column(String(32), nullable=True)
    status = Column(String(32), nullable=False, default="pending")
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="UGX")
    payment_method = Column(String(32), nullable=False, default="PesaPal")
    payment_status = Column(String(32), nullable=False, default="pending")
    payment_reference = Column(String(128), nullable=True, index=True)
    order_tracking_id = Column(String(128), nullable=True, index=True)
    confirmation_code = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)
    order_date = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)
    data = Column(JSON, nullable=True)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False)
    product_name = Column(String(256), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)
    special_instructions = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")
