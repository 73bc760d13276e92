from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from bakery.api.deps import get_cart_uuid, get_gateway, http_error
from bakery.db import get_db
from bakery.errors import BACK_TO_CART, CheckoutError
from bakery.schemas.checkout_schema import BillingIn
from bakery.services.cart_service import CartService
from bakery.services.checkout_service import CheckoutOrchestrator
from bakery.services.identity import resolve_identity

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("", summary="Submit checkout and get the gateway redirect")
def submit_checkout(
    payload: BillingIn,
    cart_uuid: Optional[str] = Depends(get_cart_uuid),
    customer_id: Optional[str] = Header(None, alias="X-Customer-Id"),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
):
    if not cart_uuid:
        raise HTTPException(
            status_code=409,
            detail={"error": "state_error", "message": "Your cart is empty", "actions": [BACK_TO_CART]},
        )
    try:
        cart, store = CartService(db).load(cart_uuid)
        orchestrator = CheckoutOrchestrator(db, gateway)
        redirect = orchestrator.submit(
            cart.cart_uuid, payload.model_dump(), store, resolve_identity(db, customer_id)
        )
    except CheckoutError as e:
        raise http_error(e)
    return redirect.to_dict()


@router.post("/retry", summary="Retry payment for the pending checkout")
def retry_checkout(
    cart_uuid: Optional[str] = Depends(get_cart_uuid),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
):
    try:
        redirect = CheckoutOrchestrator(db, gateway).retry(cart_uuid or "")
    except CheckoutError as e:
        raise http_error(e)
    return redirect.to_dict()
