from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from bakery.errors import ValidationError
from bakery.models.order import ORDER_STATUSES, Order
from bakery.repositories.customer_repo import CustomerRepository
from bakery.repositories.order_repo import OrderRepository
from bakery.utils.logs import get_logger
from bakery.utils.transactions import persistence_errors

log = get_logger("orders")


class OrderServiceException(Exception):
    pass


def order_to_dict(order: Order) -> Dict:
    return {
        "id": order.id,
        "customer_id": order.customer_id,
        "status": order.status,
        "subtotal": str(order.subtotal),
        "tax": str(order.tax),
        "total": str(order.total),
        "currency": order.currency,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "payment_reference": order.payment_reference,
        "order_tracking_id": order.order_tracking_id,
        "confirmation_code": order.confirmation_code,
        "order_date": order.order_date.isoformat() if order.order_date else None,
        "items": [
            {
                "product_id": it.product_id,
                "product_name": it.product_name,
                "quantity": it.quantity,
                "unit_price": str(it.unit_price),
                "total_price": str(it.total_price),
                "special_instructions": it.special_instructions,
            }
            for it in order.items
        ],
    }


class OrderService:
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)
        self.customers = CustomerRepository(db)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

    def list_orders(self, status: Optional[str] = None, limit: int = 100) -> List[Order]:
        return self.orders.list(status=status, limit=limit)

    def list_orders_for_customer(self, customer_id: str) -> List[Order]:
        return self.orders.list(customer_id=customer_id)

    def update_status(self, order_id: str, status: str) -> Order:
        if status not in ORDER_STATUSES:
            raise ValidationError(
                f"Unknown order status {status!r}", fields={"status": "invalid"}
            )
        order = self.orders.get(order_id)
        if not order:
            raise OrderServiceException("Order not found")
        with persistence_errors(self.db, "update order status"):
            order.status = status
            self.db.commit()
        log.info(f"order {order_id} status -> {status}")
        return order

    def mark_paid(
        self,
        order: Order,
        merchant_reference: Optional[str] = None,
        tracking_id: Optional[str] = None,
        confirmation_code: Optional[str] = None,
        payment_details: Optional[Dict] = None,
    ) -> Order:
        """
        Move an order to confirmed/completed. Repeat calls are no-ops, so the
        shopper's callback and the gateway's IPN can both report the same payment.
        Caller commits.
        """
        already_paid = order.payment_status == "completed"
        if order.status == "pending":
            order.status = "confirmed"
        order.payment_status = "completed"
        order.payment_reference = merchant_reference or order.payment_reference
        order.order_tracking_id = tracking_id or order.order_tracking_id
        order.confirmation_code = confirmation_code or order.confirmation_code
        if payment_details:
            order.data = {**(order.data or {}), "payment": payment_details}
        if not already_paid and order.customer_id:
            customer = self.customers.get(order.customer_id)
            if customer:
                self.customers.record_purchase(customer, order.total)
        self.db.flush()
        return order

    def mark_payment_failed(self, order: Order) -> Order:
        if order.payment_status != "completed":
            order.payment_status = "failed"
        self.db.flush()
        return order
