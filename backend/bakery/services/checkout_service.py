import os
import re
import secrets
import tempfile
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional
from uuid import uuid4

from filelock import FileLock, Timeout
from sqlalchemy.orm import Session

from bakery.adapters.pesapal import BillingAddress, PaymentRequest, SubmitOrderResult
from bakery.config import settings
from bakery.errors import (
    BACK_TO_CART,
    CheckoutError,
    NetworkError,
    PersistenceError,
    StateError,
    ValidationError,
)
from bakery.models.customer import ACCOUNT_BILLING_ONLY, Customer
from bakery.models.order import Order
from bakery.repositories.customer_repo import CustomerRepository
from bakery.repositories.order_repo import OrderRepository
from bakery.services.bridge import PendingPaymentRecord, PendingPaymentStore
from bakery.services.cart_store import CartStore
from bakery.services.identity import (
    Anonymous,
    AuthenticatedBillingOnly,
    AuthenticatedRegistered,
    Identity,
)
from bakery.services.phone import normalize_phone
from bakery.utils.logs import get_logger
from bakery.utils.observable import Observable
from bakery.utils.transactions import persistence_errors

log = get_logger("checkout")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# orchestrator states published to subscribers
IDLE = "idle"
VALIDATING = "validating"
SUBMITTING = "submitting"
REDIRECTING = "redirecting"
FAILED = "failed"


@dataclass
class CheckoutRedirect:
    redirect_url: str
    order_tracking_id: str
    merchant_reference: str
    order_id: str
    amount: Decimal
    currency: str

    def to_dict(self) -> Dict:
        return {
            "redirect_url": self.redirect_url,
            "order_tracking_id": self.order_tracking_id,
            "merchant_reference": self.merchant_reference,
            "order_id": self.order_id,
            "amount": str(self.amount),
            "currency": self.currency,
        }


@dataclass
class CheckoutState:
    phase: str
    error: Optional[CheckoutError] = None


def _clean(value) -> str:
    return "" if value is None else str(value).strip()


def validate_billing(billing: Dict) -> Dict:
    """
    Check required billing fields. Returns a cleaned copy; raises
    ValidationError naming every missing or malformed field.
    """
    info = {k: _clean(billing.get(k)) for k in (
        "first_name", "last_name", "full_name", "phone", "email",
        "address", "city", "postal_code",
    )}
    if not info["full_name"]:
        info["full_name"] = f"{info['first_name']} {info['last_name']}".strip()
    if not info["first_name"] and info["full_name"]:
        parts = info["full_name"].split(" ", 1)
        info["first_name"] = parts[0]
        info["last_name"] = info["last_name"] or (parts[1] if len(parts) > 1 else "")

    problems = {}
    if not info["full_name"]:
        problems["name"] = "required"
    if not info["phone"]:
        problems["phone"] = "required"
    if info["email"] and not EMAIL_RE.match(info["email"]):
        problems["email"] = "invalid"
    if problems:
        raise ValidationError(
            "Please check your billing details: " + ", ".join(f"{k} ({v})" for k, v in problems.items()),
            fields=problems,
        )
    return info


def new_merchant_reference(prefix: Optional[str] = None) -> str:
    prefix = prefix or settings.MERCHANT_REFERENCE_PREFIX
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(5)}"


class CheckoutOrchestrator(Observable):
    """
    Billing form + cart -> customer, provisional order, gateway submission and
    the pending-payment record the callback needs. Steps run strictly in order;
    nothing is returned for redirect unless the pending payment was saved.
    """

    def __init__(self, db: Session, gateway, bridge: Optional[PendingPaymentStore] = None,
                 locks_dir: Optional[str] = None):
        super().__init__()
        self.db = db
        self.gateway = gateway
        self.bridge = bridge or PendingPaymentStore(db)
        self.customers = CustomerRepository(db)
        self.orders = OrderRepository(db)
        self.locks_dir = locks_dir or settings.LOCKS_DIR or os.path.join(
            tempfile.gettempdir(), "bakery_locks"
        )
        self.state = CheckoutState(IDLE)

    def _set_state(self, phase: str, error: Optional[CheckoutError] = None):
        self.state = CheckoutState(phase, error)
        self._notify(self.state)

    # --- steps -------------------------------------------------------------

    def resolve_customer(self, info: Dict, identity: Identity) -> Customer:
        if isinstance(identity, AuthenticatedRegistered):
            customer = self.customers.get(identity.customer_id)
            if customer:
                return customer
        if isinstance(identity, AuthenticatedBillingOnly):
            customer = self.customers.get(identity.customer_id)
            if customer and customer.phone == info["phone"]:
                return self._refresh_details(customer, info)
        return self.find_or_create_by_phone(info)

    def find_or_create_by_phone(self, info: Dict) -> Customer:
        """
        Lookup-before-insert keyed on the normalized phone. The file lock
        serializes concurrent checkouts on this host only.
        """
        os.makedirs(self.locks_dir, exist_ok=True)
        lockfile = os.path.join(self.locks_dir, f"customer_{info['phone'].lstrip('+')}.lock")
        try:
            with FileLock(lockfile).acquire(timeout=10):
                with persistence_errors(self.db, "find or create customer"):
                    existing = self.customers.get_by_phone(info["phone"])
                    if existing:
                        log.info(f"reusing customer {existing.id} for {info['phone']}")
                        customer = self._refresh_details(existing, info)
                    else:
                        customer = self.customers.create(
                            first_name=info["first_name"] or None,
                            last_name=info["last_name"] or None,
                            full_name=info["full_name"],
                            phone=info["phone"],
                            email=info["email"] or None,
                            address=info["address"] or None,
                            city=info["city"] or "Kampala",
                            country="Uganda",
                            account_type=ACCOUNT_BILLING_ONLY,
                            registration_source="order",
                        )
                        log.info(f"created customer {customer.id} for {info['phone']}")
                    self.db.commit()
                    return customer
        except Timeout:
            raise NetworkError("Another checkout for this phone number is in progress, try again")

    def _refresh_details(self, customer: Customer, info: Dict) -> Customer:
        for attr, key in (("full_name", "full_name"), ("email", "email"),
                          ("address", "address"), ("city", "city")):
            if info[key] and getattr(customer, attr) != info[key]:
                setattr(customer, attr, info[key])
        return customer

    def create_provisional_order(self, customer: Customer, cart: CartStore, info: Dict) -> Order:
        totals = cart.totals()
        with persistence_errors(self.db, "create provisional order"):
            order = self.orders.create(
                f"order-{uuid4().hex[:16]}",
                cart.snapshot(),
                customer_id=customer.id,
                customer_phone=customer.phone,
                status="pending",
                payment_status="pending",
                payment_method="PesaPal",
                subtotal=totals.subtotal,
                tax=totals.tax,
                total=totals.total,
                currency=settings.CURRENCY,
                notes=f"Address: {info.get('address') or ''}",
            )
            self.db.commit()
        return order

    def build_payment_request(self, reference: str, amount: Decimal, info: Dict) -> PaymentRequest:
        return PaymentRequest(
            id=reference,
            currency=settings.CURRENCY,
            amount=float(amount),
            description=f"Order {reference} - Tina's Bakery",
            callback_url=settings.PESAPAL_CALLBACK_URL,
            notification_id=settings.PESAPAL_IPN_ID,
            billing_address=BillingAddress(
                email_address=info.get("email") or None,
                phone_number=info["phone"],
                country_code=settings.COUNTRY_CODE,
                first_name=info.get("first_name") or "Customer",
                last_name=info.get("last_name") or "-",
                line_1=info.get("address") or None,
                city=info.get("city") or None,
                postal_code=info.get("postal_code") or None,
            ),
        )

    def _submit_to_gateway(self, order: Order, reference: str, info: Dict) -> SubmitOrderResult:
        request = self.build_payment_request(reference, Decimal(str(order.total)), info)
        try:
            result = self.gateway.submit_order(request)
        except CheckoutError:
            with persistence_errors(self.db, "cancel provisional order"):
                order.payment_status = "failed"
                order.status = "cancelled"
                self.db.commit()
            raise
        with persistence_errors(self.db, "record gateway submission"):
            order.payment_reference = reference
            order.order_tracking_id = result.order_tracking_id
            self.db.commit()
        return result

    def _save_bridge(self, record: PendingPaymentRecord):
        try:
            self.bridge.save(record)
        except PersistenceError as e:
            log.error(f"could not save pending payment {record.merchant_reference}: {e.detail}")
            raise PersistenceError(
                "We could not save your payment session, so you were not sent to the "
                "payment page. Please try again."
            ) from e

    # --- entry points ------------------------------------------------------

    def submit(
        self,
        session_key: str,
        billing: Dict,
        cart: CartStore,
        identity: Optional[Identity] = None,
    ) -> CheckoutRedirect:
        identity = identity or Anonymous()
        try:
            self._set_state(VALIDATING)
            info = validate_billing(billing)
            info["phone"] = normalize_phone(info["phone"])
            totals = cart.totals()
            if totals.item_count == 0:
                raise ValidationError("Your cart is empty", fields={"cart": "empty"})

            self._set_state(SUBMITTING)
            customer = self.resolve_customer(info, identity)
            order = self.create_provisional_order(customer, cart, info)
            reference = new_merchant_reference()
            result = self._submit_to_gateway(order, reference, info)

            self._save_bridge(
                PendingPaymentRecord(
                    session_key=session_key,
                    merchant_reference=reference,
                    order_tracking_id=result.order_tracking_id,
                    amount=totals.total,
                    currency=settings.CURRENCY,
                    customer_info=info,
                    cart_items=cart.snapshot(),
                    customer_id=customer.id,
                    order_id=order.id,
                )
            )
        except ValidationError as e:
            if "cart" in e.fields:
                e.actions = [BACK_TO_CART]
            log.info(f"checkout rejected: {e.message}")
            self._set_state(FAILED, e)
            raise
        except CheckoutError as e:
            log.error(f"checkout failed ({e.kind}): {e.message}")
            self._set_state(FAILED, e)
            raise

        log.info(f"order {order.id} submitted as {reference}; tracking {result.order_tracking_id}")
        self._set_state(REDIRECTING)
        return CheckoutRedirect(
            redirect_url=result.redirect_url,
            order_tracking_id=result.order_tracking_id,
            merchant_reference=reference,
            order_id=order.id,
            amount=totals.total,
            currency=settings.CURRENCY,
        )

    def retry(self, session_key: str) -> CheckoutRedirect:
        """
        Resubmit the retained pending payment under a new merchant reference
        (the gateway rejects reuse) without asking for billing details again.
        """
        try:
            pending = self.bridge.load(session_key)
            if pending is None:
                raise StateError("No pending payment found to retry", actions=[BACK_TO_CART])
            order = self.orders.get(pending.order_id) if pending.order_id else None
            if order is None:
                raise StateError("The order for this payment no longer exists", actions=[BACK_TO_CART])
            if order.payment_status == "completed":
                raise StateError("This order has already been paid")

            self._set_state(SUBMITTING)
            with persistence_errors(self.db, "reopen provisional order"):
                order.status = "pending"
                order.payment_status = "pending"
                self.db.commit()
            reference = new_merchant_reference()
            result = self._submit_to_gateway(order, reference, pending.customer_info)
            pending.merchant_reference = reference
            pending.order_tracking_id = result.order_tracking_id
            pending.status_checks = 0
            self._save_bridge(pending)
        except CheckoutError as e:
            log.error(f"checkout retry failed ({e.kind}): {e.message}")
            self._set_state(FAILED, e)
            raise

        log.info(f"order {order.id} resubmitted as {reference}; tracking {result.order_tracking_id}")
        self._set_state(REDIRECTING)
        return CheckoutRedirect(
            redirect_url=result.redirect_url,
            order_tracking_id=result.order_tracking_id,
            merchant_reference=reference,
            order_id=order.id,
            amount=pending.amount,
            currency=pending.currency,
        )
