from sqlalchemy import Boolean, Column, Numeric, String, Text

from bakery.db import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    name = Column(String(256), nullable=False)
    slug = Column(String(256), nullable=True, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    category = Column(String(128), nullable=True, index=True)
    image_url = Column(String(512), nullable=True)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Product id={self.id} name={self.name}>"
