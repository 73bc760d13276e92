from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from bakery.api.deps import get_cart_uuid, get_gateway, http_error
from bakery.db import get_db
from bakery.errors import CheckoutError
from bakery.schemas.checkout_schema import IpnIn
from bakery.services.callback_service import TRACKING_PARAM, PaymentCallbackHandler
from bakery.services.cart_service import CartService
from bakery.services.cart_store import CartStore
from bakery.services.ipn_service import IpnService

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.get("/callback", summary="Resolve the shopper's return from the gateway")
def payment_callback(
    request: Request,
    cart_uuid: Optional[str] = Depends(get_cart_uuid),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
):
    """
    One status check per call. While `state` is "loading" the client calls
    again after `retry_after` seconds; the number of checks is bounded.
    """
    # without a cookie or tracking id the handler ends in error; no cart is needed
    store = CartStore()
    if cart_uuid and request.query_params.get(TRACKING_PARAM):
        try:
            _, store = CartService(db).load(cart_uuid)
        except CheckoutError as e:
            raise http_error(e)
    handler = PaymentCallbackHandler(db, gateway)
    result = handler.resolve(cart_uuid or "", request.query_params, store)
    return result.to_dict()


def _ipn(db: Session, gateway, tracking_id: Optional[str], reference: Optional[str],
         notification_type: Optional[str]):
    if not tracking_id:
        return {"status": 500, "message": "Missing OrderTrackingId"}
    try:
        return IpnService(db, gateway).handle(tracking_id, reference, notification_type)
    except CheckoutError as e:
        raise http_error(e)


@router.get("/ipn", summary="PesaPal instant payment notification (GET)")
def payment_ipn_get(
    tracking_id: Optional[str] = Query(None, alias="OrderTrackingId"),
    reference: Optional[str] = Query(None, alias="OrderMerchantReference"),
    notification_type: Optional[str] = Query(None, alias="OrderNotificationType"),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
):
    return _ipn(db, gateway, tracking_id, reference, notification_type)


@router.post("/ipn", summary="PesaPal instant payment notification (POST)")
def payment_ipn_post(payload: IpnIn, db: Session = Depends(get_db), gateway=Depends(get_gateway)):
    return _ipn(db, gateway, payload.OrderTrackingId, payload.OrderMerchantReference,
                payload.OrderNotificationType)
