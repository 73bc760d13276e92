from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from bakery.models.cart import Cart
from bakery.models.cart_item import CartItem


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_uuid(self, cart_uuid: str) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.cart_uuid == cart_uuid).first()

    def create_guest_cart(self, cart_uuid: str) -> Cart:
        c = Cart(cart_uuid=cart_uuid)
        self.db.add(c)
        self.db.flush()
        return c

    def replace_lines(self, cart: Cart, lines: List[Dict]) -> Cart:
        """Overwrite the stored lines with the given CartStore snapshot, keeping order."""
        cart.items.clear()
        self.db.flush()
        for pos, line in enumerate(lines):
            cart.items.append(
                CartItem(
                    line_id=line["id"],
                    position=pos,
                    quantity=line["quantity"],
                    product_snapshot=line.get("product"),
                    special_instructions=line.get("special_instructions"),
                )
            )
        self.db.flush()
        return cart

    def snapshot(self, cart: Cart) -> List[Dict]:
        return [
            {
                "id": it.line_id,
                "product": it.product_snapshot,
                "quantity": it.quantity,
                "special_instructions": it.special_instructions,
            }
            for it in cart.items
        ]
