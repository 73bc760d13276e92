from fastapi import APIRouter
from sqlalchemy import text

from bakery.config import settings
from bakery.db import engine

router = APIRouter()


@router.get("/health", tags=["health"])
def health():
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        db_ok = False
    gateway_configured = bool(
        settings.PESAPAL_CONSUMER_KEY and settings.PESAPAL_CONSUMER_SECRET and settings.PESAPAL_IPN_ID
    )
    return {
        "status": "ok" if db_ok and gateway_configured else "degraded",
        "db": db_ok,
        "payment_gateway": gateway_configured,
    }
