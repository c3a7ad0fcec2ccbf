from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._ids import new_id


class Location(db.Model):
    """Store location a terminal belongs to (read-mostly reference data)."""
    __tablename__ = "locations"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(128), nullable=False, index=True)
    address = db.Column(db.String(255), nullable=True)
    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "timezone": self.timezone,
        }


class Register(db.Model):
    """
    Physical register/cash drawer at a location.

    STATUS:
    - available: no shift open on this register
    - in_use: a shift is open on it
    - offline: taken out of service
    """
    __tablename__ = "registers"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)

    # Suggested opening float (in cents)
    float_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="available", index=True)

    location = db.relationship("Location", backref=db.backref("registers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "name": self.name,
            "float_cents": self.float_cents,
            "status": self.status,
        }


class Product(db.Model):
    """
    Sellable item.

    Price is authoritative in cents; tax_rate is a fraction in [0, 1].
    stock_quantity changes only through approved inventory adjustments.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("tax_rate >= 0 AND tax_rate <= 1", name="ck_products_tax_rate_range"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)

    category_id = db.Column(db.String(64), nullable=True, index=True)
    image_url = db.Column(db.String(512), nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def in_stock(self) -> bool:
        return (self.stock_quantity or 0) > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "tax_rate": float(self.tax_rate) if self.tax_rate is not None else 0.0,
            "category_id": self.category_id,
            "image_url": self.image_url,
            "barcode": self.barcode,
            "in_stock": self.in_stock,
            "stock_quantity": self.stock_quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
