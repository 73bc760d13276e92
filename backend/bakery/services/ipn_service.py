from typing import Dict, Optional

from sqlalchemy.orm import Session

from bakery.repositories.order_repo import OrderRepository
from bakery.services.order_service import OrderService
from bakery.utils.logs import get_logger
from bakery.utils.payment_log import PaymentLog, payment_log
from bakery.utils.transactions import persistence_errors

log = get_logger("payments")


class IpnService:
    """
    Gateway-to-server payment notifications. Only updates orders that already
    exist; order materialization and cart clearing stay with the callback.
    """

    def __init__(self, db: Session, gateway, logbook: Optional[PaymentLog] = None):
        self.db = db
        self.gateway = gateway
        self.orders = OrderRepository(db)
        self.order_service = OrderService(db)
        self.logbook = logbook or payment_log

    def handle(self, tracking_id: str, merchant_reference: Optional[str],
               notification_type: Optional[str] = "IPNCHANGE") -> Dict:
        ack = {
            "orderNotificationType": notification_type or "IPNCHANGE",
            "orderTrackingId": tracking_id,
            "orderMerchantReference": merchant_reference,
            "status": 200,
        }
        self.logbook.callback({"ipn": ack}, reference=merchant_reference or tracking_id)

        order = self.orders.get_by_tracking_id(tracking_id)
        if order is None and merchant_reference:
            order = self.orders.get_by_reference(merchant_reference)
        if order is None:
            log.warning(f"IPN for unknown payment {merchant_reference}/{tracking_id}")
            ack["status"] = 500
            return ack

        status = self.gateway.get_transaction_status(tracking_id)
        with persistence_errors(self.db, "apply IPN"):
            if status.is_success:
                self.order_service.mark_paid(
                    order,
                    merchant_reference=merchant_reference,
                    tracking_id=tracking_id,
                    confirmation_code=status.confirmation_code,
                    payment_details=status.raw,
                )
            elif status.is_failure:
                self.order_service.mark_payment_failed(order)
            self.db.commit()
        log.info(f"IPN {tracking_id}: order {order.id} payment_status={order.payment_status}")
        return ack
