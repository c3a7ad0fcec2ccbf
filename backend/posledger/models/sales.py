from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._ids import new_id


CART_ACTIVE = "active"
CART_COMPLETED = "completed"
CART_CANCELLED = "cancelled"

# Payment methods
PAYMENT_CASH = "CASH"
PAYMENT_BANK_TRANSFER = "BANK_TRANSFER"
PAYMENT_CARD = "CARD"
PAYMENT_MOBILE = "MOBILE"

PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_BANK_TRANSFER, PAYMENT_CARD, PAYMENT_MOBILE)


class Cart(db.Model):
    """
    One in-progress or finalized sale.

    LIFECYCLE:
    - active -> completed (transaction completion)
    - active -> cancelled (clear)
    completed and cancelled are terminal.

    At most one cart per terminal may be active; the partial unique index
    enforces it in the store, the cart engine enforces it in code.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.Index(
            "uq_carts_single_active",
            "status",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    status = db.Column(db.String(16), nullable=False, default=CART_ACTIVE, index=True)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)
    rounding_adjustment_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_ref = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    line_items = db.relationship(
        "CartLineItem",
        back_populates="cart",
        order_by="CartLineItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "line_items": [line.to_dict() for line in self.line_items],
            "subtotal_cents": self.subtotal_cents,
            "total_tax_cents": self.total_tax_cents,
            "total_discount_cents": self.total_discount_cents,
            "grand_total_cents": self.grand_total_cents,
            "rounding_adjustment_cents": self.rounding_adjustment_cents,
            "customer_ref": self.customer_ref,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }


class CartLineItem(db.Model):
    """
    One product line in a cart.

    Name, unit price and tax rate are snapshotted when the product is added so
    later catalog edits never reprice an open line.

    line_total_cents = unit_price_cents * quantity
    line_tax_cents = line_total_cents * tax_rate (rounded half-up)
    """
    __tablename__ = "cart_line_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_line_items_cart_product"),
        db.CheckConstraint("quantity > 0", name="ck_cart_line_items_quantity_positive"),
        db.CheckConstraint("discount_cents >= 0", name="ck_cart_line_items_discount_non_negative"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    cart_id = db.Column(db.String(36), db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    position = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    line_total_cents = db.Column(db.Integer, nullable=False, default=0)
    line_tax_cents = db.Column(db.Integer, nullable=False, default=0)

    cart = db.relationship("Cart", back_populates="line_items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate": float(self.tax_rate),
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
            "line_tax_cents": self.line_tax_cents,
        }


class SaleTransaction(db.Model):
    """
    A settled sale.

    Created only from a cart moving active -> completed. Immutable afterwards
    except for sync_status/synced_at, which the outbox updates.

    payment_amount_cents is always the cart grand total, never the tender.
    """
    __tablename__ = "transactions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    cart_id = db.Column(db.String(36), db.ForeignKey("carts.id"), nullable=False, unique=True)

    shift_id = db.Column(db.String(36), db.ForeignKey("shifts.id"), nullable=True, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_amount_cents = db.Column(db.Integer, nullable=False)
    tendered_cents = db.Column(db.Integer, nullable=False)
    change_given_cents = db.Column(db.Integer, nullable=False, default=0)

    receipt_id = db.Column(db.String(32), nullable=True, unique=True)
    reference_number = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="completed")
    sync_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    offline_created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cart = db.relationship("Cart")
    audit_trail = db.relationship(
        "AuditEntry",
        back_populates="transaction",
        order_by="AuditEntry.id",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "shift_id": self.shift_id,
            "user_id": self.user_id,
            "payment_method": self.payment_method,
            "payment_amount_cents": self.payment_amount_cents,
            "tendered_cents": self.tendered_cents,
            "change_given_cents": self.change_given_cents,
            "receipt_id": self.receipt_id,
            "reference_number": self.reference_number,
            "status": self.status,
            "sync_status": self.sync_status,
            "audit_trail": [entry.to_dict() for entry in self.audit_trail],
            "offline_created_at": to_utc_z(self.offline_created_at),
            "synced_at": to_utc_z(self.synced_at),
        }


class AuditEntry(db.Model):
    """Append-only fact about a transaction. Never updated or deleted."""
    __tablename__ = "audit_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(36), db.ForeignKey("transactions.id"), nullable=False, index=True)

    action = db.Column(db.String(64), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False)
    details = db.Column(db.JSON, nullable=True)

    transaction = db.relationship("SaleTransaction", back_populates="audit_trail")

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "user_id": self.user_id,
            "timestamp": to_utc_z(self.timestamp),
            "details": self.details,
        }
