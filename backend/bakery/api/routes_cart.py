from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from bakery.api.deps import CART_COOKIE, get_cart_uuid, http_error
from bakery.db import get_db
from bakery.errors import CheckoutError
from bakery.schemas.checkout_schema import AddItemIn, CustomCakeIn, UpdateQuantityIn
from bakery.services.cart_service import CartService
from bakery.services.cart_store import CartStore

router = APIRouter(prefix="/api/cart", tags=["cart"])


def _cart_body(cart_uuid: str, store: CartStore) -> dict:
    return {
        "cart_uuid": cart_uuid,
        "items": store.snapshot(),
        "totals": store.totals().to_dict(),
    }


def _set_cookie(response: Response, cart_uuid: str):
    response.set_cookie(CART_COOKIE, cart_uuid, httponly=False, samesite="Lax")


@router.get("", summary="Get cart")
def get_cart(response: Response, cart_uuid: Optional[str] = Depends(get_cart_uuid),
             db: Session = Depends(get_db)):
    try:
        cart, store = CartService(db).load(cart_uuid)
    except CheckoutError as e:
        raise http_error(e)
    _set_cookie(response, cart.cart_uuid)
    return _cart_body(cart.cart_uuid, store)


@router.post("/items", summary="Add product to cart")
def add_item(
    payload: AddItemIn,
    response: Response,
    cart_uuid: Optional[str] = Depends(get_cart_uuid),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        cart, store = svc.load(cart_uuid)
        svc.add_product(store, payload.product_id, payload.qty, payload.special_instructions)
    except CheckoutError as e:
        raise http_error(e)
    _set_cookie(response, cart.cart_uuid)
    return _cart_body(cart.cart_uuid, store)


@router.post("/custom-cakes", summary="Add a custom cake order to cart")
def add_custom_cake(
    payload: CustomCakeIn,
    response: Response,
    cart_uuid: Optional[str] = Depends(get_cart_uuid),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        cart, store = svc.load(cart_uuid)
        svc.add_custom_cake(store, payload.model_dump(exclude={"qty"}), payload.qty)
    except CheckoutError as e:
        raise http_error(e)
    _set_cookie(response, cart.cart_uuid)
    return _cart_body(cart.cart_uuid, store)


@router.patch("/items/{line_id}", summary="Set line quantity (0 removes)")
def update_item(
    line_id: str,
    payload: UpdateQuantityIn,
    cart_uuid: Optional[str] = Depends(get_cart_uuid),
    db: Session = Depends(get_db),
):
    try:
        cart, store = CartService(db).load(cart_uuid)
        if payload.quantity > 0 and store.get(line_id) is None:
            raise HTTPException(status_code=404, detail="Cart line not found")
        store.update_quantity(line_id, payload.quantity)
    except CheckoutError as e:
        raise http_error(e)
    return _cart_body(cart.cart_uuid, store)


@router.delete("/items/{line_id}", summary="Remove line")
def remove_item(line_id: str, cart_uuid: Optional[str] = Depends(get_cart_uuid),
                db: Session = Depends(get_db)):
    try:
        cart, store = CartService(db).load(cart_uuid)
        store.remove(line_id)
    except CheckoutError as e:
        raise http_error(e)
    return _cart_body(cart.cart_uuid, store)
