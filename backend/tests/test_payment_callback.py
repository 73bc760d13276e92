from decimal import Decimal

from bakery.db import SessionLocal, init_db
from bakery.errors import RETRY_PAYMENT, NetworkError
from bakery.models.customer import Customer
from bakery.models.order import Order
from bakery.repositories.product_repo import ProductRepository
from bakery.services.bridge import PendingPaymentStore
from bakery.services.callback_service import ERROR, FAILED, LOADING, SUCCESS, PaymentCallbackHandler
from bakery.services.cart_service import CartService
from bakery.services.checkout_service import CheckoutOrchestrator
from bakery.services.ipn_service import IpnService


def setup_module(module):
    init_db()
    db = SessionLocal()
    try:
        repo = ProductRepository(db)
        repo.create_or_update("artisan-sourdough", "Artisan Sourdough", 6500, category="bread")
        repo.create_or_update("red-velvet-cake", "Red Velvet Cake", 45000, category="cakes")
        db.commit()
    finally:
        db.close()


def checkout(db, gateway, phone, billing_form):
    """Guest cart with two lines, submitted to the gateway; returns (cart_uuid, redirect)."""
    svc = CartService(db)
    cart, store = svc.load(None)
    svc.add_product(store, "artisan-sourdough", 2)
    svc.add_product(store, "red-velvet-cake", 1)
    redirect = CheckoutOrchestrator(db, gateway).submit(cart.cart_uuid, billing_form(phone), store)
    return cart.cart_uuid, redirect


def params(redirect):
    return {
        "OrderTrackingId": redirect.order_tracking_id,
        "OrderMerchantReference": redirect.merchant_reference,
    }


def test_completed_payment_confirms_one_order_and_empties_cart(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway(["Completed"])
        cart_uuid, redirect = checkout(db, gateway, "0700200300", billing_form)
        _, store = CartService(db).load(cart_uuid)

        result = PaymentCallbackHandler(db, gateway).resolve(cart_uuid, params(redirect), store)

        assert result.state == SUCCESS
        assert result.order["id"] == redirect.order_id
        assert result.order["status"] == "confirmed"
        assert result.order["confirmation_code"] == "CONF-001"
        assert len(store) == 0
        assert len(CartService(db).load(cart_uuid)[1]) == 0
        assert PendingPaymentStore(db).load(cart_uuid) is None

        orders = db.query(Order).filter(Order.customer_phone == "+256700200300").all()
        assert len(orders) == 1
        assert orders[0].payment_status == "completed"
        assert orders[0].data["payment"]["payment_status_description"] == "Completed"

        customer = db.get(Customer, orders[0].customer_id)
        assert customer.total_orders == 1
    finally:
        db.close()


def test_reloading_callback_after_success_creates_nothing(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway(["Completed"])
        cart_uuid, redirect = checkout(db, gateway, "0700200301", billing_form)
        handler = PaymentCallbackHandler(db, gateway)
        _, store = CartService(db).load(cart_uuid)
        assert handler.resolve(cart_uuid, params(redirect), store).state == SUCCESS

        again = handler.resolve(cart_uuid, params(redirect), store)
        assert again.state == ERROR
        assert again.error == "state_error"
        assert len(gateway.status_calls) == 1
        assert db.query(Order).filter(Order.customer_phone == "+256700200301").count() == 1
    finally:
        db.close()


def test_failed_payment_keeps_cart_and_pending_payment(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway(["Failed"])
        cart_uuid, redirect = checkout(db, gateway, "0700200302", billing_form)
        _, store = CartService(db).load(cart_uuid)

        result = PaymentCallbackHandler(db, gateway).resolve(cart_uuid, params(redirect), store)

        assert result.state == FAILED
        assert RETRY_PAYMENT in result.actions
        assert len(CartService(db).load(cart_uuid)[1]) == 2
        assert PendingPaymentStore(db).load(cart_uuid) is not None
        assert db.get(Order, redirect.order_id).payment_status == "failed"
    finally:
        db.close()


def test_retry_after_failure_then_success(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway(["Failed", "Completed"])
        cart_uuid, redirect = checkout(db, gateway, "0700200303", billing_form)
        handler = PaymentCallbackHandler(db, gateway)
        _, store = CartService(db).load(cart_uuid)
        assert handler.resolve(cart_uuid, params(redirect), store).state == FAILED

        retried = CheckoutOrchestrator(db, gateway).retry(cart_uuid)
        result = handler.resolve(cart_uuid, params(retried), store)

        assert result.state == SUCCESS
        assert result.order["payment_reference"] == retried.merchant_reference
        assert db.query(Order).filter(Order.customer_phone == "+256700200303").count() == 1
    finally:
        db.close()


def test_missing_tracking_id_never_calls_gateway(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway()
        cart_uuid, redirect = checkout(db, gateway, "0700200304", billing_form)
        _, store = CartService(db).load(cart_uuid)

        result = PaymentCallbackHandler(db, gateway).resolve(
            cart_uuid, {"OrderMerchantReference": redirect.merchant_reference}, store
        )

        assert result.state == ERROR
        assert result.error == "invalid_callback"
        assert gateway.status_calls == []
        assert PendingPaymentStore(db).load(cart_uuid) is not None
    finally:
        db.close()


def test_callback_for_another_checkout_is_rejected(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway()
        cart_uuid, redirect = checkout(db, gateway, "0700200305", billing_form)
        _, store = CartService(db).load(cart_uuid)
        result = PaymentCallbackHandler(db, gateway).resolve(
            cart_uuid,
            {"OrderTrackingId": redirect.order_tracking_id, "OrderMerchantReference": "TINA-someone-else"},
            store,
        )
        assert result.state == ERROR
        assert result.error == "state_error"
        assert gateway.status_calls == []
    finally:
        db.close()


def test_pending_status_is_polled_a_bounded_number_of_times(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway(["Pending"])
        cart_uuid, redirect = checkout(db, gateway, "0700200306", billing_form)
        _, store = CartService(db).load(cart_uuid)
        handler = PaymentCallbackHandler(db, gateway, poll_interval=2, max_attempts=3)

        first = handler.resolve(cart_uuid, params(redirect), store)
        assert first.state == LOADING
        assert first.retry_after == 2

        sleeps = []
        result = handler.run(cart_uuid, params(redirect), store, sleep=sleeps.append)

        assert result.state == ERROR
        assert result.error == "payment_pending"
        assert len(gateway.status_calls) == 3
        assert sleeps == [2]
        # the next visit starts a fresh round of checks
        assert PendingPaymentStore(db).load(cart_uuid).status_checks == 0
        assert len(store) == 2
    finally:
        db.close()


def test_ipn_confirms_existing_order(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway(["Completed"])
        _, redirect = checkout(db, gateway, "0700200307", billing_form)

        ack = IpnService(db, gateway).handle(redirect.order_tracking_id, redirect.merchant_reference)

        assert ack == {
            "orderNotificationType": "IPNCHANGE",
            "orderTrackingId": redirect.order_tracking_id,
            "orderMerchantReference": redirect.merchant_reference,
            "status": 200,
        }
        order = db.get(Order, redirect.order_id)
        assert order.status == "confirmed"
        assert order.payment_status == "completed"
    finally:
        db.close()


def test_ipn_then_callback_counts_the_purchase_once(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway(["Completed"])
        cart_uuid, redirect = checkout(db, gateway, "0700200308", billing_form)
        IpnService(db, gateway).handle(redirect.order_tracking_id, redirect.merchant_reference)

        _, store = CartService(db).load(cart_uuid)
        result = PaymentCallbackHandler(db, gateway).resolve(cart_uuid, params(redirect), store)

        assert result.state == SUCCESS
        order = db.get(Order, redirect.order_id)
        assert db.get(Customer, order.customer_id).total_orders == 1
        assert db.query(Order).filter(Order.customer_phone == "+256700200308").count() == 1
    finally:
        db.close()


def test_ipn_for_unknown_payment_is_not_acknowledged(fake_gateway):
    db = SessionLocal()
    try:
        gateway = fake_gateway()
        ack = IpnService(db, gateway).handle("trk-unknown", "TINA-unknown")
        assert ack["status"] == 500
        assert gateway.status_calls == []
    finally:
        db.close()


def test_gateway_outage_during_callback_changes_nothing(fake_gateway, billing_form):
    class UnreachableStatus(fake_gateway):
        def get_transaction_status(self, tracking_id):
            self.status_calls.append(tracking_id)
            raise NetworkError("Could not reach the payment gateway")

    db = SessionLocal()
    try:
        gateway = UnreachableStatus()
        cart_uuid, redirect = checkout(db, gateway, "0700200309", billing_form)
        _, store = CartService(db).load(cart_uuid)

        result = PaymentCallbackHandler(db, gateway).resolve(cart_uuid, params(redirect), store)

        assert result.state == ERROR
        assert result.error == "network_error"
        assert len(gateway.status_calls) == 1
        assert len(CartService(db).load(cart_uuid)[1]) == 2
        assert PendingPaymentStore(db).load(cart_uuid) is not None
        order = db.get(Order, redirect.order_id)
        assert (order.status, order.payment_status) == ("pending", "pending")
    finally:
        db.close()


def test_missing_provisional_order_is_rebuilt_with_tax(fake_gateway, billing_form):
    db = SessionLocal()
    try:
        gateway = fake_gateway(["Completed"])
        cart_uuid, redirect = checkout(db, gateway, "0700200310", billing_form)
        db.delete(db.get(Order, redirect.order_id))
        db.commit()
        _, store = CartService(db).load(cart_uuid)

        result = PaymentCallbackHandler(db, gateway).resolve(cart_uuid, params(redirect), store)

        assert result.state == SUCCESS
        assert result.order["id"] != redirect.order_id
        assert Decimal(result.order["subtotal"]) == Decimal("58000")
        assert Decimal(result.order["tax"]) == Decimal("10440")
        assert Decimal(result.order["total"]) == Decimal("68440")
        assert len(result.order["items"]) == 2
    finally:
        db.close()
