from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from bakery.db import get_db
from bakery.repositories.product_repo import ProductRepository
from bakery.schemas.product_schema import ProductOut

router = APIRouter(tags=["catalogue"])


@router.get("", summary="List products")
def list_products(
    q: Optional[str] = Query(None, description="search term"),
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    repo = ProductRepository(db)
    items, total = repo.list(q=q, category=category, page=page, size=size)
    return {
        "items": [ProductOut.model_validate(p).model_dump(mode="json") for p in items],
        "total": total,
    }


@router.get("/{product_id}", summary="Get product")
def get_product(product_id: str, db: Session = Depends(get_db)):
    repo = ProductRepository(db)
    p = repo.get(product_id)
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return ProductOut.model_validate(p).model_dump(mode="json")
