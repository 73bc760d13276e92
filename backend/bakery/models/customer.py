from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String

from bakery.db import Base

ACCOUNT_REGISTERED = "registered"
ACCOUNT_BILLING_ONLY = "billing_only"


def _now():
    return datetime.now(timezone.utc)


class Customer(Base):
    __tablename__ = "customers"
    id = Column(String(64), primary_key=True)
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)
    full_name = Column(String(256), nullable=False)
    # canonical +2567XXXXXXXX form; identity key for billing-only customers
    phone = Column(String(32), nullable=False, index=True)
    email = Column(String(256), nullable=True)
    address = Column(String(512), nullable=True)
    city = Column(String(128), nullable=True)
    country = Column(String(64), nullable=True)
    account_type = Column(String(32), nullable=False, default=ACCOUNT_BILLING_ONLY)
    registration_source = Column(String(32), nullable=False, default="order")
    is_active = Column(Boolean, default=True, nullable=False)
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)
