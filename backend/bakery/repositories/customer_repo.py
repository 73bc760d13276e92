from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from bakery.models.customer import Customer


class CustomerRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, customer_id: str) -> Optional[Customer]:
        return self.db.get(Customer, customer_id)

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        """`phone` must already be normalized."""
        return (
            self.db.query(Customer)
            .filter(Customer.phone == phone)
            .order_by(Customer.created_at)
            .first()
        )

    def create(self, **fields) -> Customer:
        c = Customer(id=f"customer-{uuid4().hex}", **fields)
        self.db.add(c)
        self.db.flush()
        return c

    def record_purchase(self, customer: Customer, amount) -> Customer:
        customer.total_orders = (customer.total_orders or 0) + 1
        customer.total_spent = (customer.total_spent or 0) + amount
        self.db.flush()
        return customer
