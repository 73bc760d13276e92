import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from bakery.adapters.pesapal import TransactionStatus
from bakery.config import settings
from bakery.errors import (
    BACK_TO_CART,
    CONTACT_SUPPORT,
    GO_HOME,
    RETRY_PAYMENT,
    CheckoutError,
    StateError,
)
from bakery.repositories.order_repo import OrderRepository
from bakery.services.bridge import PendingPaymentRecord, PendingPaymentStore
from bakery.services.cart_store import CartStore
from bakery.services.order_service import OrderService, order_to_dict
from bakery.utils.logs import get_logger
from bakery.utils.payment_log import PaymentLog, payment_log
from bakery.utils.transactions import persistence_errors

log = get_logger("callback")

LOADING = "loading"
SUCCESS = "success"
FAILED = "failed"
ERROR = "error"

TRACKING_PARAM = "OrderTrackingId"
REFERENCE_PARAM = "OrderMerchantReference"


@dataclass
class CallbackResult:
    state: str
    message: str
    actions: List[str] = field(default_factory=list)
    order: Optional[Dict] = None
    retry_after: Optional[int] = None
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.state != LOADING

    def to_dict(self) -> Dict:
        return {
            "state": self.state,
            "message": self.message,
            "actions": self.actions,
            "order": self.order,
            "retry_after": self.retry_after,
            "error": self.error,
        }


class PaymentCallbackHandler:
    """
    Resolves a shopper's return from the gateway: loading -> success | failed | error.

    The pending payment record is the "not yet finalized" guard: it is only
    deleted after the order is confirmed, so running the handler again for the
    same callback URL finds nothing and cannot create a second order.
    """

    def __init__(
        self,
        db: Session,
        gateway,
        bridge: Optional[PendingPaymentStore] = None,
        poll_interval: Optional[int] = None,
        max_attempts: Optional[int] = None,
        logbook: Optional[PaymentLog] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.bridge = bridge or PendingPaymentStore(db)
        self.orders = OrderRepository(db)
        self.order_service = OrderService(db)
        self.poll_interval = settings.STATUS_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.max_attempts = max_attempts or settings.STATUS_POLL_MAX_ATTEMPTS
        self.logbook = logbook or payment_log

    def resolve(self, session_key: str, params: Mapping[str, str], cart: CartStore) -> CallbackResult:
        """One pass of the state machine for the given callback query parameters."""
        tracking_id = params.get(TRACKING_PARAM)
        merchant_reference = params.get(REFERENCE_PARAM)
        self.logbook.callback(
            {"orderTrackingId": tracking_id, "merchantReference": merchant_reference},
            reference=merchant_reference or tracking_id,
        )

        if not tracking_id:
            log.warning("callback without OrderTrackingId")
            return CallbackResult(ERROR, "Invalid payment callback", [GO_HOME, CONTACT_SUPPORT],
                                  error="invalid_callback")

        try:
            pending = self.bridge.load(session_key)
            if pending is None:
                raise StateError("No pending payment found")
            if merchant_reference and merchant_reference != pending.merchant_reference:
                raise StateError("This payment does not match your current checkout")
            if pending.order_tracking_id and tracking_id != pending.order_tracking_id:
                raise StateError("This payment does not match your current checkout")

            status = self.gateway.get_transaction_status(tracking_id)
            self.logbook.callback(status.raw or {"status": status.status},
                                  reference=pending.merchant_reference, status=status.status)

            if status.is_success:
                return self._succeed(pending, tracking_id, status, cart)
            if status.is_failure:
                return self._fail(pending, status.status)
            return self._keep_polling(pending, status.status)
        except CheckoutError as e:
            log.error(f"callback for {tracking_id} ended in error ({e.kind}): {e.message}")
            self.logbook.error(e, reference=merchant_reference or tracking_id)
            return CallbackResult(ERROR, e.message, e.actions, error=e.kind)

    def run(
        self,
        session_key: str,
        params: Mapping[str, str],
        cart: CartStore,
        sleep: Callable[[float], None] = time.sleep,
    ) -> CallbackResult:
        """Resolve, sleeping between checks, until a terminal state is reached."""
        result = self.resolve(session_key, params, cart)
        checks = 1
        while not result.terminal and checks <= self.max_attempts:
            sleep(result.retry_after or self.poll_interval)
            result = self.resolve(session_key, params, cart)
            checks += 1
        return result

    # --- transitions -------------------------------------------------------

    def _succeed(self, pending: PendingPaymentRecord, tracking_id: str,
                 status: TransactionStatus, cart: CartStore) -> CallbackResult:
        with persistence_errors(self.db, "confirm order"):
            order = self.orders.get(pending.order_id) if pending.order_id else None
            if order is None:
                order = self.orders.get_by_reference(pending.merchant_reference)
            if order is None:
                # provisional row missing: materialize the order from the snapshot
                totals = CartStore.from_snapshot(pending.cart_items).totals()
                order = self.orders.create(
                    f"order-{uuid4().hex[:16]}",
                    pending.cart_items,
                    customer_id=pending.customer_id,
                    customer_phone=(pending.customer_info or {}).get("phone"),
                    status="pending",
                    total=pending.amount,
                    subtotal=totals.subtotal,
                    tax=totals.tax,
                    currency=pending.currency,
                    payment_method="PesaPal",
                )
            self.order_service.mark_paid(
                order,
                merchant_reference=pending.merchant_reference,
                tracking_id=tracking_id,
                confirmation_code=status.confirmation_code,
                payment_details=status.raw,
            )
            self.db.commit()

        cart.clear()
        self.bridge.delete(pending.session_key)
        log.info(f"payment {pending.merchant_reference} completed; order {order.id} confirmed")
        return CallbackResult(
            SUCCESS,
            "Payment completed successfully!",
            ["view_orders", "continue_shopping"],
            order=order_to_dict(order),
        )

    def _fail(self, pending: PendingPaymentRecord, status: str) -> CallbackResult:
        if pending.order_id:
            order = self.orders.get(pending.order_id)
            if order is not None:
                with persistence_errors(self.db, "record failed payment"):
                    self.order_service.mark_payment_failed(order)
                    self.db.commit()
        self.bridge.set_status_checks(pending.session_key, 0)
        log.info(f"payment {pending.merchant_reference} reported {status}; keeping it for retry")
        return CallbackResult(
            FAILED,
            "Payment was not completed. Please try again.",
            [RETRY_PAYMENT, BACK_TO_CART],
        )

    def _keep_polling(self, pending: PendingPaymentRecord, status: str) -> CallbackResult:
        checks = pending.status_checks + 1
        if checks >= self.max_attempts:
            # start a fresh round if the shopper comes back later
            self.bridge.set_status_checks(pending.session_key, 0)
            log.warning(
                f"payment {pending.merchant_reference} still {status} after {checks} checks"
            )
            return CallbackResult(
                ERROR,
                "Payment is still being processed, please contact support",
                [CONTACT_SUPPORT, GO_HOME],
                error="payment_pending",
            )
        self.bridge.set_status_checks(pending.session_key, checks)
        return CallbackResult(
            LOADING,
            "Payment is still being processed...",
            retry_after=self.poll_interval,
        )
