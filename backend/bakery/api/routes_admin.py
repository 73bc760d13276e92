from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from bakery.api.deps import http_error
from bakery.db import get_db
from bakery.errors import CheckoutError
from bakery.schemas.checkout_schema import OrderStatusIn
from bakery.services.order_service import OrderService, OrderServiceException, order_to_dict
from bakery.utils.payment_log import payment_log

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/orders", summary="List orders")
def list_orders(status: Optional[str] = None, limit: int = 100, db: Session = Depends(get_db)):
    svc = OrderService(db)
    return [order_to_dict(o) for o in svc.list_orders(status=status, limit=limit)]


@router.patch("/orders/{order_id}/status", summary="Change order status")
def update_order_status(order_id: str, payload: OrderStatusIn, db: Session = Depends(get_db)):
    svc = OrderService(db)
    try:
        order = svc.update_status(order_id, payload.status)
    except OrderServiceException as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CheckoutError as e:
        raise http_error(e)
    return order_to_dict(order)


@router.get("/payment-logs", summary="Recent gateway traffic")
def payment_logs(reference: Optional[str] = None):
    if reference:
        return payment_log.for_reference(reference)
    return payment_log.entries()
