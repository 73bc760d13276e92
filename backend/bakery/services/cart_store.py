from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional

from bakery.config import settings
from bakery.utils.logs import get_logger
from bakery.utils.observable import Observable

log = get_logger("cart")

TWO_PLACES = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartProduct:
    id: str
    name: str
    unit_price: Decimal
    image: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "image": self.image,
            "category": self.category,
        }


def _first(raw: Mapping, *names):
    for n in names:
        v = raw.get(n)
        if v is not None and v != "":
            return v
    return None


def to_cart_product(raw: Any) -> Optional[CartProduct]:
    """
    Build the cart's product snapshot from a catalogue row, a custom cake
    payload or a stored mapping. Returns None when no usable product is given.
    """
    if raw is None:
        return None
    if isinstance(raw, CartProduct):
        return raw
    if not isinstance(raw, Mapping):
        # ORM row (bakery.models.product.Product) or any attribute-bearing object
        raw = {
            "id": getattr(raw, "id", None),
            "name": getattr(raw, "name", None),
            "price": getattr(raw, "price", None),
            "image_url": getattr(raw, "image_url", None),
            "category": getattr(raw, "category", None),
        }

    product_id = _first(raw, "id", "product_id", "productId")
    name = _first(raw, "name", "product_name", "title")
    if product_id is None or name is None:
        return None

    price_cents = raw.get("price_cents")
    if price_cents is not None:
        unit_price = to_money(price_cents) / 100
    else:
        unit_price = to_money(_first(raw, "unit_price", "price"))

    return CartProduct(
        id=str(product_id),
        name=str(name),
        unit_price=unit_price,
        image=_first(raw, "image", "image_url", "imageUrl"),
        category=_first(raw, "category", "category_id", "categoryId"),
    )


@dataclass
class CartLine:
    id: str
    product: Optional[CartProduct]
    quantity: int = 1
    special_instructions: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        if self.product is None:
            return Decimal("0")
        return self.product.unit_price * self.quantity

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "product": self.product.to_dict() if self.product else None,
            "quantity": self.quantity,
            "special_instructions": self.special_instructions,
        }


@dataclass
class CartTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    item_count: int

    def to_dict(self) -> Dict:
        return {
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
            "item_count": self.item_count,
        }


class CartStore(Observable):
    """
    Ordered, in-memory shopping cart. At most one line per id; every mutation
    notifies subscribers with the store itself.
    """

    def __init__(self, tax_rate: Optional[Decimal] = None, lines: Optional[List[CartLine]] = None):
        super().__init__()
        self.tax_rate = to_money(settings.TAX_RATE if tax_rate is None else tax_rate)
        self._lines: List[CartLine] = list(lines or [])

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def __len__(self):
        return len(self._lines)

    def get(self, line_id: str) -> Optional[CartLine]:
        return next((l for l in self._lines if l.id == line_id), None)

    def add(
        self,
        line_id: str,
        product: Any,
        quantity: int = 1,
        special_instructions: Optional[str] = None,
    ) -> CartLine:
        qty = max(int(quantity or 0), 1)
        line = self.get(line_id)
        if line:
            line.quantity += qty
            if special_instructions:
                line.special_instructions = special_instructions
        else:
            snapshot = to_cart_product(product)
            if snapshot is None:
                log.warning(f"add(): line {line_id!r} added without a resolvable product")
            line = CartLine(
                id=line_id,
                product=snapshot,
                quantity=qty,
                special_instructions=special_instructions,
            )
            self._lines.append(line)
        self._notify(self)
        return line

    def update_quantity(self, line_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove(line_id)
            return
        line = self.get(line_id)
        if not line:
            return
        line.quantity = int(quantity)
        self._notify(self)

    def remove(self, line_id: str) -> None:
        before = len(self._lines)
        self._lines = [l for l in self._lines if l.id != line_id]
        if len(self._lines) != before:
            self._notify(self)

    def clear(self) -> None:
        self._lines = []
        self._notify(self)

    def totals(self) -> CartTotals:
        subtotal = Decimal("0")
        count = 0
        for line in self._lines:
            if line.product is None:
                log.warning(f"totals(): skipping line {line.id!r} with unresolved product")
                continue
            subtotal += line.line_total
            count += line.quantity
        subtotal = quantize(subtotal)
        tax = quantize(subtotal * self.tax_rate)
        return CartTotals(subtotal=subtotal, tax=tax, total=subtotal + tax, item_count=count)

    def snapshot(self) -> List[Dict]:
        return [l.to_dict() for l in self._lines]

    @classmethod
    def from_snapshot(cls, data: Optional[List[Dict]], tax_rate: Optional[Decimal] = None) -> "CartStore":
        lines = []
        for raw in data or []:
            lines.append(
                CartLine(
                    id=str(raw["id"]),
                    product=to_cart_product(raw.get("product")),
                    quantity=max(int(raw.get("quantity", 1)), 1),
                    special_instructions=raw.get("special_instructions"),
                )
            )
        return cls(tax_rate=tax_rate, lines=lines)
