# Overview: Read-side catalog queries for the sale screen.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Product
from ..validation import NotFoundError


class ProductCatalog:
    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, product_id: str) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def search(self, query: str | None = None, category_id: str | None = None, limit: int = 100) -> list[Product]:
        """Case-insensitive match on name or sku, exact match on barcode."""
        products = self.session.query(Product)
        term = (query or "").strip()
        if term:
            like = f"%{term}%"
            products = products.filter(or_(
                Product.name.ilike(like),
                Product.sku.ilike(like),
                Product.barcode == term,
            ))
        if category_id:
            products = products.filter_by(category_id=category_id)
        return products.order_by(Product.name).limit(limit).all()
