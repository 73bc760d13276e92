#!/usr/bin/env python3
"""
Seed the bakery catalogue, optionally from a JSON file.

Usage:
    python scripts/seed_products.py
    python scripts/seed_products.py --file catalogue.json
"""
import argparse
import json
import os
import sys
from decimal import Decimal

# allow running from backend/scripts without installing
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from bakery.db import SessionLocal, init_db
from bakery.repositories.product_repo import ProductRepository

DEFAULT_PRODUCTS = [
    {"id": "artisan-sourdough", "name": "Artisan Sourdough Bread", "price": 6500, "category": "breads"},
    {"id": "whole-wheat-bread", "name": "Whole Wheat Bread", "price": 5500, "category": "breads"},
    {"id": "chocolate-croissant", "name": "Chocolate Croissant", "price": 4000, "category": "pastries"},
    {"id": "almond-croissant", "name": "Almond Croissant", "price": 4500, "category": "pastries"},
    {"id": "red-velvet-cake", "name": "Red Velvet Cake", "price": 45000, "category": "cakes", "is_featured": True},
    {"id": "vanilla-birthday-cake", "name": "Vanilla Birthday Cake", "price": 40000, "category": "cakes"},
    {"id": "chocolate-chip-cookies", "name": "Chocolate Chip Cookies", "price": 2000, "category": "cookies"},
    {"id": "oatmeal-raisin-cookies", "name": "Oatmeal Raisin Cookies", "price": 2000, "category": "cookies"},
    {"id": "christmas-fruit-cake", "name": "Christmas Fruit Cake", "price": 55000, "category": "seasonal"},
]


def _normalize_entry(entry):
    """Accept a few spellings used by older catalogue exports."""
    product_id = entry.get("id") or entry.get("sku") or entry.get("productId")
    name = entry.get("name") or entry.get("title") or ""
    price = entry.get("price", entry.get("amount", 0))
    return {
        "product_id": str(product_id),
        "name": name,
        "price": Decimal(str(price or 0)),
        "category": entry.get("category") or entry.get("categoryId"),
        "description": entry.get("description"),
        "image_url": entry.get("image_url") or entry.get("imageUrl") or entry.get("image"),
        "is_featured": bool(entry.get("is_featured") or entry.get("isFeatured")),
    }


def seed(entries):
    init_db()
    db = SessionLocal()
    try:
        repo = ProductRepository(db)
        count = 0
        for entry in entries:
            data = _normalize_entry(entry)
            if not data["product_id"] or not data["name"]:
                print(f"skipping entry without id/name: {entry}")
                continue
            repo.create_or_update(**data)
            count += 1
        db.commit()
        print(f"Seeded {count} products.")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed bakery products")
    parser.add_argument("--file", help="JSON list of products (defaults to the built-in catalogue)")
    args = parser.parse_args()

    if args.file:
        with open(args.file, encoding="utf-8") as fh:
            raw = json.load(fh)
        entries = raw.get("products", raw) if isinstance(raw, dict) else raw
    else:
        entries = DEFAULT_PRODUCTS
    seed(entries)
