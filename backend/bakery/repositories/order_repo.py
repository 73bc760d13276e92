from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from bakery.models.order import Order, OrderItem


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: str) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def get_by_tracking_id(self, tracking_id: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.order_tracking_id == tracking_id).first()

    def get_by_reference(self, merchant_reference: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.payment_reference == merchant_reference).first()

    def list(self, status: Optional[str] = None, customer_id: Optional[str] = None, limit: int = 100) -> List[Order]:
        query = self.db.query(Order)
        if status:
            query = query.filter(Order.status == status)
        if customer_id:
            query = query.filter(Order.customer_id == customer_id)
        return query.order_by(Order.order_date.desc()).limit(limit).all()

    def create(self, order_id: str, lines: List[Dict], **fields) -> Order:
        """
        Insert an order with one order_item per cart snapshot line.
        Lines without a product snapshot are skipped.
        """
        order = Order(id=order_id, **fields)
        self.db.add(order)
        for line in lines:
            product = line.get("product")
            if not product:
                continue
            unit_price = Decimal(str(product["unit_price"]))
            order.items.append(
                OrderItem(
                    product_id=product["id"],
                    product_name=product.get("name"),
                    quantity=line["quantity"],
                    unit_price=unit_price,
                    total_price=unit_price * line["quantity"],
                    special_instructions=line.get("special_instructions"),
                )
            )
        self.db.flush()
        return order
