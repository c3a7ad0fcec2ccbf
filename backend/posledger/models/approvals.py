from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._ids import new_id


APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"

ADJUSTMENT_REASONS = ("damage", "theft", "correction", "received", "return")

MOVEMENT_DROP = "drop"
MOVEMENT_PICKUP = "pickup"
MOVEMENT_FLOAT_ADJUSTMENT = "float_adjustment"

MOVEMENT_TYPES = (MOVEMENT_DROP, MOVEMENT_PICKUP, MOVEMENT_FLOAT_ADJUSTMENT)


class _ApprovalFields:
    """Columns shared by every approval-gated request."""

    created_by = db.Column(db.String(64), nullable=False)
    created_by_name = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=APPROVAL_PENDING, index=True)

    approved_by = db.Column(db.String(64), nullable=True)
    approved_by_name = db.Column(db.String(128), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    rejected_by = db.Column(db.String(64), nullable=True)
    rejected_by_name = db.Column(db.String(128), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    sync_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    def _approval_dict(self) -> dict:
        return {
            "created_by": self.created_by,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_by_name": self.approved_by_name,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_by_name": self.rejected_by_name,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "sync_status": self.sync_status,
            "version_id": self.version_id,
        }


class InventoryAdjustment(_ApprovalFields, db.Model):
    """
    Stock correction request.

    stock_quantity += quantity_change is applied exactly once, on the
    transition into approved.
    """
    __tablename__ = "inventory_adjustments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    location_id = db.Column(db.String(36), nullable=False, index=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "location_id": self.location_id,
            "quantity_change": self.quantity_change,
            "reason": self.reason,
            "notes": self.notes,
        }
        data.update(self._approval_dict())
        return data


class CashMovement(_ApprovalFields, db.Model):
    """
    Cash moved between the register drawer and the safe.

    - drop: register -> safe, lowers expected cash
    - pickup / float_adjustment: safe -> register, raises expected cash

    The shift ledger applies the amount exactly once, on approval.
    """
    __tablename__ = "cash_movements"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    shift_id = db.Column(db.String(36), db.ForeignKey("shifts.id"), nullable=False, index=True)

    type = db.Column(db.String(24), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    from_location = db.Column(db.String(32), nullable=False)
    to_location = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "shift_id": self.shift_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "from_location": self.from_location,
            "to_location": self.to_location,
            "reason": self.reason,
        }
        data.update(self._approval_dict())
        return data
