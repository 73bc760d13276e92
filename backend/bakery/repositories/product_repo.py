from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from bakery.models.product import Product


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: str) -> Optional[Product]:
        """Return an available product by id, or None."""
        return (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.is_available == True)
            .first()
        )

    def list(
        self,
        q: Optional[str] = None,
        category: Optional[str] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product).filter(Product.is_available == True)
        if category:
            query = query.filter(Product.category == category)
        if q:
            like = f"%{q}%"
            query = query.filter(
                (Product.name.ilike(like)) | (Product.description.ilike(like))
            )
        total = query.with_entities(func.count()).scalar() or 0
        items = query.order_by(Product.name).offset((page - 1) * size).limit(size).all()
        return items, total

    def create_or_update(
        self,
        product_id: str,
        name: str,
        price,
        category: str = None,
        description: str = None,
        image_url: str = None,
        is_featured: bool = False,
    ) -> Product:
        p = self.db.get(Product, product_id)
        if p:
            p.name = name
            p.price = price
            p.category = category
            p.description = description
            p.image_url = image_url
            p.is_featured = is_featured
        else:
            p = Product(
                id=product_id,
                name=name,
                slug=name.lower().replace(" ", "-"),
                price=price,
                category=category,
                description=description,
                image_url=image_url,
                is_featured=is_featured,
            )
            self.db.add(p)
        self.db.flush()
        return p
