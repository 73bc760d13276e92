from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, Numeric, String

from bakery.db import Base


class PendingPayment(Base):
    """Bridge record carrying checkout context across the gateway redirect."""

    __tablename__ = "pending_payments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    # one slot per guest session
    session_key = Column(String(64), unique=True, nullable=False, index=True)
    merchant_reference = Column(String(128), nullable=False, index=True)
    order_tracking_id = Column(String(128), nullable=True, index=True)
    order_id = Column(String(64), nullable=True)
    customer_id = Column(String(64), nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    customer_info = Column(JSON, nullable=True)
    cart_items = Column(JSON, nullable=True)
    status_checks = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)
