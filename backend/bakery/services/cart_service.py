import uuid
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from bakery.errors import ValidationError
from bakery.models.cart import Cart
from bakery.repositories.cart_repo import CartRepository
from bakery.repositories.product_repo import ProductRepository
from bakery.services.cart_store import CartLine, CartStore
from bakery.utils.transactions import persistence_errors


class CartService:
    """
    Guest carts stored per `cart_uuid`. Each request rebuilds a CartStore from
    the saved lines and writes it back whenever the store changes.
    """

    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)

    def get_or_create_cart_for_guest(self, cart_uuid: Optional[str] = None) -> Cart:
        if cart_uuid:
            c = self.cart_repo.get_by_uuid(cart_uuid)
            if c:
                return c
        new_uuid = cart_uuid or uuid.uuid4().hex
        with persistence_errors(self.db, "create cart"):
            c = self.cart_repo.create_guest_cart(new_uuid)
            self.db.commit()
        return c

    def load(self, cart_uuid: Optional[str]) -> Tuple[Cart, CartStore]:
        cart = self.get_or_create_cart_for_guest(cart_uuid)
        store = CartStore.from_snapshot(self.cart_repo.snapshot(cart))

        def _persist(s: CartStore):
            with persistence_errors(self.db, "save cart"):
                self.cart_repo.replace_lines(cart, s.snapshot())
                self.db.commit()

        store.subscribe(_persist)
        return cart, store

    def add_product(self, store: CartStore, product_id: str, qty: int = 1,
                    special_instructions: Optional[str] = None) -> CartLine:
        product = self.product_repo.get(product_id)
        if not product:
            raise ValidationError("Product not found", fields={"product_id": "unknown"})
        return store.add(product.id, product, qty, special_instructions)

    def add_custom_cake(self, store: CartStore, cake: Dict, qty: int = 1) -> CartLine:
        """
        Custom cake orders are ad-hoc lines with a synthetic id; the price is
        quoted by the cake form and carried as the line's own snapshot.
        """
        line_id = f"custom-cake-{uuid.uuid4().hex[:12]}"
        product = {
            "id": line_id,
            "name": cake.get("name") or f"Custom {cake.get('flavor', '')} cake".replace("  ", " "),
            "price": cake["price"],
            "image": cake.get("image"),
            "category": "custom-cakes",
        }
        return store.add(line_id, product, qty, cake.get("special_instructions"))
