from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class AddItemIn(BaseModel):
    product_id: str
    qty: int = Field(1, ge=1)
    special_instructions: Optional[str] = None


class CustomCakeIn(BaseModel):
    name: Optional[str] = None
    flavor: Optional[str] = None
    size: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    image: Optional[str] = None
    special_instructions: Optional[str] = None
    qty: int = Field(1, ge=1)


class UpdateQuantityIn(BaseModel):
    quantity: int


class BillingIn(BaseModel):
    # presence/format is checked by the orchestrator so every problem is reported at once
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


class OrderStatusIn(BaseModel):
    status: str


class IpnIn(BaseModel):
    # field names are the gateway's
    OrderTrackingId: Optional[str] = None
    OrderMerchantReference: Optional[str] = None
    OrderNotificationType: Optional[str] = None
