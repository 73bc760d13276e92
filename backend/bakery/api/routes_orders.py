from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from bakery.db import get_db
from bakery.services.order_service import OrderService, order_to_dict

router = APIRouter(tags=["orders"])


@router.get("", summary="Orders for a customer")
def list_customer_orders(customer_id: str = Query(...), db: Session = Depends(get_db)):
    svc = OrderService(db)
    return [order_to_dict(o) for o in svc.list_orders_for_customer(customer_id)]


@router.get("/{order_id}", summary="Track an order")
def get_order(order_id: str, db: Session = Depends(get_db)):
    order = OrderService(db).get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order_to_dict(order)
