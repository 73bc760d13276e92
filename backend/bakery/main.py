from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bakery.api.health import router as health_router
from bakery.api.routes_admin import router as admin_router
from bakery.api.routes_cart import router as cart_router
from bakery.api.routes_catalogue import router as catalogue_router
from bakery.api.routes_checkout import router as checkout_router
from bakery.api.routes_orders import router as orders_router
from bakery.api.routes_payments import router as payments_router
from bakery.config import settings
from bakery.db import SessionLocal, init_db
from bakery.services.bridge import PendingPaymentStore
from bakery.utils.logs import get_logger

log = get_logger("app")


def purge_pending_payments():
    db = SessionLocal()
    try:
        refs = PendingPaymentStore(db).purge_expired()
        if refs:
            log.info(f"expired pending payments: {refs}")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    scheduler = BackgroundScheduler()
    scheduler.add_job(purge_pending_payments, "interval", seconds=60, id="purge_pending_payments")
    scheduler.start()

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Tina's Bakery - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(catalogue_router, prefix="/api/products", tags=["catalogue"])

app.include_router(cart_router, tags=["cart"])

app.include_router(checkout_router, tags=["checkout"])

app.include_router(payments_router, tags=["payments"])

app.include_router(orders_router, prefix="/api/orders", tags=["orders"])

app.include_router(admin_router, tags=["admin"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("bakery.main:app", host=settings.APP_HOST, port=settings.APP_PORT)
