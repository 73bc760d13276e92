from bakery.db import init_db
from bakery.main import app
from fastapi.testclient import TestClient

client = TestClient(app)


def setup_module(module):
    init_db()


def test_health_ok():
    res = client.get("/api/health")
    assert res.status_code == 200
    body = res.json()
    assert body["db"] is True
    assert body["payment_gateway"] is True
    assert body["status"] == "ok"
