from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from bakery.config import settings
from bakery.errors import StateError
from bakery.models.pending_payment import PendingPayment
from bakery.utils.logs import get_logger
from bakery.utils.transactions import persistence_errors

log = get_logger("checkout")


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands timestamps back naive
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class PendingPaymentRecord:
    session_key: str
    merchant_reference: str
    order_tracking_id: Optional[str]
    amount: Decimal
    currency: str
    customer_info: Dict
    cart_items: List[Dict]
    customer_id: Optional[str] = None
    order_id: Optional[str] = None
    status_checks: int = 0
    expires_at: Optional[datetime] = None


class PendingPaymentStore:
    """
    One resumable payment per guest session.

    The record is the only link between a checkout submission and the
    shopper's return from the gateway. Saving over an existing slot replaces
    it (last write wins); expired slots read as empty.
    """

    def __init__(self, db: Session, ttl_seconds: Optional[int] = None):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds or settings.PENDING_PAYMENT_TTL_SECONDS)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _row(self, session_key: str) -> Optional[PendingPayment]:
        return (
            self.db.query(PendingPayment)
            .filter(PendingPayment.session_key == session_key)
            .first()
        )

    def save(self, record: PendingPaymentRecord) -> PendingPaymentRecord:
        with persistence_errors(self.db, "save pending payment"):
            row = self._row(record.session_key)
            if row is None:
                row = PendingPayment(session_key=record.session_key)
                self.db.add(row)
            elif row.merchant_reference != record.merchant_reference:
                log.warning(
                    f"session {record.session_key!r}: replacing pending payment "
                    f"{row.merchant_reference} with {record.merchant_reference}"
                )
            row.merchant_reference = record.merchant_reference
            row.order_tracking_id = record.order_tracking_id
            row.order_id = record.order_id
            row.customer_id = record.customer_id
            row.amount = record.amount
            row.currency = record.currency
            row.customer_info = record.customer_info
            row.cart_items = record.cart_items
            row.status_checks = record.status_checks
            row.created_at = self._now()
            row.expires_at = self._now() + self.ttl
            self.db.commit()
        record.expires_at = row.expires_at
        return record

    def load(self, session_key: str) -> Optional[PendingPaymentRecord]:
        if not session_key:
            return None
        row = self._row(session_key)
        if row is None:
            return None
        if _aware(row.expires_at) <= self._now():
            log.info(f"session {session_key!r}: pending payment {row.merchant_reference} expired")
            return None
        if not row.merchant_reference or row.amount is None or not isinstance(row.cart_items, list):
            raise StateError("Your saved payment details are unreadable, please check out again")
        return PendingPaymentRecord(
            session_key=row.session_key,
            merchant_reference=row.merchant_reference,
            order_tracking_id=row.order_tracking_id,
            amount=Decimal(str(row.amount)),
            currency=row.currency,
            customer_info=row.customer_info or {},
            cart_items=row.cart_items,
            customer_id=row.customer_id,
            order_id=row.order_id,
            status_checks=row.status_checks or 0,
            expires_at=_aware(row.expires_at),
        )

    def set_status_checks(self, session_key: str, count: int) -> None:
        with persistence_errors(self.db, "update pending payment"):
            row = self._row(session_key)
            if row is not None:
                row.status_checks = count
                self.db.commit()

    def delete(self, session_key: str) -> bool:
        with persistence_errors(self.db, "delete pending payment"):
            row = self._row(session_key)
            if row is None:
                return False
            self.db.delete(row)
            self.db.commit()
            return True

    def purge_expired(self) -> List[str]:
        """Drop expired slots; returns their merchant references."""
        with persistence_errors(self.db, "purge pending payments"):
            rows = (
                self.db.query(PendingPayment)
                .filter(PendingPayment.expires_at <= self._now())
                .all()
            )
            refs = [r.merchant_reference for r in rows]
            for r in rows:
                self.db.delete(r)
            self.db.commit()
            return refs
