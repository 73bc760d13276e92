from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.orm import Session

from bakery.models.customer import ACCOUNT_REGISTERED, Customer


@dataclass(frozen=True)
class Anonymous:
    pass


@dataclass(frozen=True)
class AuthenticatedRegistered:
    customer_id: str


@dataclass(frozen=True)
class AuthenticatedBillingOnly:
    customer_id: str


Identity = Union[Anonymous, AuthenticatedRegistered, AuthenticatedBillingOnly]


def resolve_identity(db: Session, customer_id: Optional[str]) -> Identity:
    if not customer_id:
        return Anonymous()
    customer = db.get(Customer, customer_id)
    if not customer or not customer.is_active:
        return Anonymous()
    if customer.account_type == ACCOUNT_REGISTERED:
        return AuthenticatedRegistered(customer.id)
    return AuthenticatedBillingOnly(customer.id)
