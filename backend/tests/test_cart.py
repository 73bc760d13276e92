from fastapi.testclient import TestClient

from bakery.db import SessionLocal, init_db
from bakery.main import app
from bakery.repositories.product_repo import ProductRepository

client = TestClient(app)


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


def test_add_item_to_cart():
    res = client.post("/api/cart/items", json={"product_id": "artisan-sourdough", "qty": 2})
    assert res.status_code == 200
    body = res.json()
    assert "cart_uuid" in body
    assert client.cookies.get("cart_uuid") == body["cart_uuid"]


def test_get_cart():
    res = client.get("/api/cart")
    assert res.status_code == 200
    body = res.json()
    assert [it["id"] for it in body["items"]] == ["artisan-sourdough"]


def test_adding_again_increments_quantity_and_totals():
    res = client.post("/api/cart/items", json={"product_id": "red-velvet-cake", "qty": 1})
    assert res.status_code == 200
    res = client.post("/api/cart/items", json={"product_id": "red-velvet-cake"})
    items = {it["id"]: it["quantity"] for it in res.json()["items"]}
    assert items == {"artisan-sourdough": 2, "red-velvet-cake": 2}

    res = client.patch("/api/cart/items/red-velvet-cake", json={"quantity": 1})
    totals = res.json()["totals"]
    assert totals["subtotal"] == "58000.00"
    assert totals["tax"] == "10440.00"
    assert totals["total"] == "68440.00"
    assert totals["item_count"] == 3


def test_unknown_product_is_rejected():
    res = client.post("/api/cart/items", json={"product_id": "does-not-exist"})
    assert res.status_code == 422
    assert res.json()["detail"]["fields"] == {"product_id": "unknown"}


def test_custom_cake_is_its_own_line():
    res = client.post(
        "/api/cart/custom-cakes",
        json={"flavor": "chocolate", "size": "2kg", "price": "120000", "special_instructions": "Happy 30th"},
    )
    assert res.status_code == 200
    cakes = [it for it in res.json()["items"] if it["id"].startswith("custom-cake-")]
    assert len(cakes) == 1
    assert cakes[0]["product"]["category"] == "custom-cakes"
    assert cakes[0]["special_instructions"] == "Happy 30th"

    res = client.delete(f"/api/cart/items/{cakes[0]['id']}")
    assert all(not it["id"].startswith("custom-cake-") for it in res.json()["items"])


def test_quantity_zero_removes_line():
    res = client.patch("/api/cart/items/artisan-sourdough", json={"quantity": 0})
    assert res.status_code == 200
    assert [it["id"] for it in res.json()["items"]] == ["red-velvet-cake"]


def test_updating_missing_line_is_404():
    res = client.patch("/api/cart/items/not-in-cart", json={"quantity": 3})
    assert res.status_code == 404
