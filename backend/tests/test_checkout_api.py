from fastapi.testclient import TestClient

from bakery.api.deps import get_gateway
from bakery.db import SessionLocal, init_db
from bakery.errors import GatewayError
from bakery.main import app
from bakery.models.cart import Cart
from bakery.repositories.product_repo import ProductRepository
from bakery.utils.payment_log import payment_log


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


def teardown_function(function):
    app.dependency_overrides.clear()


def shopper(gateway):
    app.dependency_overrides[get_gateway] = lambda: gateway
    client = TestClient(app)
    client.post("/api/cart/items", json={"product_id": "artisan-sourdough", "qty": 2})
    client.post("/api/cart/items", json={"product_id": "red-velvet-cake", "qty": 1})
    return client


def callback_params(body):
    return {
        "OrderTrackingId": body["order_tracking_id"],
        "OrderMerchantReference": body["merchant_reference"],
    }


def test_checkout_without_cart_cookie_is_rejected(fake_gateway):
    app.dependency_overrides[get_gateway] = lambda: fake_gateway()
    res = TestClient(app).post("/api/checkout", json={})
    assert res.status_code == 409


def test_invalid_billing_lists_fields(fake_gateway):
    client = shopper(fake_gateway())
    res = client.post("/api/checkout", json={"phone": "123", "email": "x"})
    assert res.status_code == 422
    detail = res.json()["detail"]
    assert detail["error"] == "validation_error"
    assert set(detail["fields"]) == {"name", "email"}
    assert "edit_billing" in detail["actions"]


def test_full_checkout_and_callback(fake_gateway, billing_form):
    gateway = fake_gateway(["Completed"])
    client = shopper(gateway)

    res = client.post("/api/checkout", json=billing_form("0700600700"))
    assert res.status_code == 200
    body = res.json()
    assert body["redirect_url"].startswith("https://pay.example.test/")
    assert body["amount"] == "68440.00"
    assert body["currency"] == "UGX"

    res = client.get("/api/payments/callback", params=callback_params(body))
    assert res.status_code == 200
    result = res.json()
    assert result["state"] == "success"
    assert result["order"]["id"] == body["order_id"]

    assert client.get("/api/cart").json()["items"] == []

    res = client.get("/api/payments/callback", params=callback_params(body))
    assert res.json()["state"] == "error"
    assert res.json()["error"] == "state_error"

    order = client.get(f"/api/orders/{body['order_id']}").json()
    assert order["status"] == "confirmed"
    mine = client.get("/api/orders", params={"customer_id": order["customer_id"]}).json()
    assert [o["id"] for o in mine] == [body["order_id"]]

    logs = client.get("/api/admin/payment-logs", params={"reference": body["merchant_reference"]}).json()
    assert any(e["type"] == "callback" for e in logs)


def test_failed_payment_can_be_retried(fake_gateway, billing_form):
    gateway = fake_gateway(["Failed", "Completed"])
    client = shopper(gateway)
    body = client.post("/api/checkout", json=billing_form("0700600701")).json()

    failed = client.get("/api/payments/callback", params=callback_params(body)).json()
    assert failed["state"] == "failed"
    assert "retry_payment" in failed["actions"]
    assert len(client.get("/api/cart").json()["items"]) == 2

    res = client.post("/api/checkout/retry")
    assert res.status_code == 200
    retried = res.json()
    assert retried["merchant_reference"] != body["merchant_reference"]
    assert retried["order_id"] == body["order_id"]

    done = client.get("/api/payments/callback", params=callback_params(retried)).json()
    assert done["state"] == "success"


def test_pending_payment_asks_client_to_poll(fake_gateway, billing_form):
    client = shopper(fake_gateway(["Pending"]))
    body = client.post("/api/checkout", json=billing_form("0700600702")).json()
    res = client.get("/api/payments/callback", params=callback_params(body)).json()
    assert res["state"] == "loading"
    assert res["retry_after"] > 0


def test_callback_without_tracking_id(fake_gateway):
    gateway = fake_gateway()
    client = shopper(gateway)
    res = client.get("/api/payments/callback").json()
    assert res["state"] == "error"
    assert res["error"] == "invalid_callback"
    assert gateway.status_calls == []


def test_gateway_error_is_reported_with_actions(fake_gateway, billing_form):
    client = shopper(fake_gateway(submit_error=GatewayError("Amount too low", code="invalid_amount")))
    res = client.post("/api/checkout", json=billing_form("0700600703"))
    assert res.status_code == 502
    detail = res.json()["detail"]
    assert detail["error"] == "gateway_error"
    assert detail["code"] == "invalid_amount"
    assert client.post("/api/checkout/retry").status_code == 409


def test_ipn_get_and_post(fake_gateway, billing_form):
    gateway = fake_gateway(["Completed"])
    client = shopper(gateway)
    body = client.post("/api/checkout", json=billing_form("0700600704")).json()

    res = client.get(
        "/api/payments/ipn",
        params={
            "OrderTrackingId": body["order_tracking_id"],
            "OrderMerchantReference": body["merchant_reference"],
            "OrderNotificationType": "IPNCHANGE",
        },
    )
    assert res.status_code == 200
    assert res.json()["status"] == 200
    assert client.get(f"/api/orders/{body['order_id']}").json()["payment_status"] == "completed"

    res = client.post(
        "/api/payments/ipn",
        json={"OrderTrackingId": "trk-unknown", "OrderMerchantReference": "TINA-unknown"},
    )
    assert res.json()["status"] == 500


def test_admin_can_move_order_status(fake_gateway, billing_form):
    client = shopper(fake_gateway())
    body = client.post("/api/checkout", json=billing_form("0700600705")).json()

    res = client.patch(f"/api/admin/orders/{body['order_id']}/status", json={"status": "processing"})
    assert res.status_code == 200
    assert res.json()["status"] == "processing"

    res = client.patch(f"/api/admin/orders/{body['order_id']}/status", json={"status": "baking"})
    assert res.status_code == 422
    assert client.patch("/api/admin/orders/nope/status", json={"status": "completed"}).status_code == 404

    listed = client.get("/api/admin/orders", params={"status": "processing"}).json()
    assert body["order_id"] in [o["id"] for o in listed]
    payment_log.clear()


def test_callback_without_cookie_creates_no_cart(fake_gateway):
    app.dependency_overrides[get_gateway] = lambda: fake_gateway()
    db = SessionLocal()
    try:
        before = db.query(Cart).count()
        res = TestClient(app).get("/api/payments/callback", params={"OrderTrackingId": "trk-1"}).json()
        assert res["state"] == "error"
        assert res["error"] == "state_error"
        res = TestClient(app).get("/api/payments/callback").json()
        assert res["error"] == "invalid_callback"
        assert db.query(Cart).count() == before
    finally:
        db.close()
