from typing import Optional

from fastapi import HTTPException, Request

from bakery.adapters.pesapal import PesapalClient, build_client
from bakery.errors import CheckoutError

CART_COOKIE = "cart_uuid"

_gateway: Optional[PesapalClient] = None


def get_gateway() -> PesapalClient:
    """Process-wide client so the access token is shared between requests."""
    global _gateway
    if _gateway is None:
        _gateway = build_client()
    return _gateway


def get_cart_uuid(request: Request) -> Optional[str]:
    return request.cookies.get(CART_COOKIE)


def http_error(e: CheckoutError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.to_dict())
