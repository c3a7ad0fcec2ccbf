from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._ids import new_id


SHIFT_OPEN = "open"
SHIFT_CLOSED = "closed"

REPORT_X = "X"
REPORT_Z = "Z"


class Shift(db.Model):
    """
    A cashier's open drawer session.

    LIFECYCLE:
    - open: sales and approved cash movements accrue into expected_cash_cents
    - closed: counted, variance recorded, immutable except sync_status

    At most one open shift per (opened_by, location_id).
    expected_cash_cents only moves through ShiftLedger operations.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_open_per_user_location",
            "opened_by",
            "location_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    register_id = db.Column(db.String(36), db.ForeignKey("registers.id"), nullable=False, index=True)
    location_id = db.Column(db.String(36), nullable=False, index=True)

    opened_by = db.Column(db.String(64), nullable=False, index=True)
    opened_by_name = db.Column(db.String(128), nullable=False)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    closed_by = db.Column(db.String(64), nullable=True)
    closed_by_name = db.Column(db.String(128), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cash tracking (all amounts in cents)
    opening_float_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    actual_cash_cents = db.Column(db.Integer, nullable=True)
    cash_difference_cents = db.Column(db.Integer, nullable=True)  # actual - expected

    sales_count = db.Column(db.Integer, nullable=False, default=0)
    sales_total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN, index=True)
    sync_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    register = db.relationship("Register", backref=db.backref("shifts", lazy=True))
    reports = db.relationship(
        "ShiftReport",
        back_populates="shift",
        order_by="ShiftReport.generated_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def x_reports(self) -> list["ShiftReport"]:
        return [r for r in self.reports if r.kind == REPORT_X]

    @property
    def z_report(self) -> "ShiftReport | None":
        return next((r for r in self.reports if r.kind == REPORT_Z), None)

    def to_dict(self) -> dict:
        z_report = self.z_report
        return {
            "id": self.id,
            "register_id": self.register_id,
            "location_id": self.location_id,
            "opened_by": self.opened_by,
            "opened_by_name": self.opened_by_name,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by": self.closed_by,
            "closed_by_name": self.closed_by_name,
            "closed_at": to_utc_z(self.closed_at),
            "opening_float_cents": self.opening_float_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "actual_cash_cents": self.actual_cash_cents,
            "cash_difference_cents": self.cash_difference_cents,
            "sales_count": self.sales_count,
            "sales_total_cents": self.sales_total_cents,
            "status": self.status,
            "x_reports": [r.to_dict() for r in self.x_reports],
            "z_report": z_report.to_dict() if z_report else None,
            "sync_status": self.sync_status,
            "version_id": self.version_id,
        }


class ShiftReport(db.Model):
    """
    X (snapshot) or Z (terminal) report for a shift.

    X reports are repeatable and never touch shift cash fields.
    A shift has at most one Z report; writing it closes the shift.
    """
    __tablename__ = "shift_reports"
    __table_args__ = (
        db.Index(
            "uq_shift_reports_single_z",
            "shift_id",
            unique=True,
            sqlite_where=db.text("kind = 'Z'"),
            postgresql_where=db.text("kind = 'Z'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    shift_id = db.Column(db.String(36), db.ForeignKey("shifts.id"), nullable=False, index=True)
    kind = db.Column(db.String(1), nullable=False)  # X, Z

    generated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    generated_by = db.Column(db.String(128), nullable=False)
    approved_by = db.Column(db.String(128), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sales_count = db.Column(db.Integer, nullable=False, default=0)
    sales_total_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_total_cents = db.Column(db.Integer, nullable=False, default=0)
    card_total_cents = db.Column(db.Integer, nullable=False, default=0)
    transfer_total_cents = db.Column(db.Integer, nullable=False, default=0)
    mobile_total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Z only
    expected_cash_cents = db.Column(db.Integer, nullable=True)
    actual_cash_cents = db.Column(db.Integer, nullable=True)
    variance_cents = db.Column(db.Integer, nullable=True)  # actual - expected

    shift = db.relationship("Shift", back_populates="reports")

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "shift_id": self.shift_id,
            "kind": self.kind,
            "generated_at": to_utc_z(self.generated_at),
            "generated_by": self.generated_by,
            "sales_count": self.sales_count,
            "sales_total_cents": self.sales_total_cents,
            "cash_total_cents": self.cash_total_cents,
            "card_total_cents": self.card_total_cents,
            "transfer_total_cents": self.transfer_total_cents,
            "mobile_total_cents": self.mobile_total_cents,
        }
        if self.kind == REPORT_Z:
            data.update({
                "approved_by": self.approved_by,
                "approved_at": to_utc_z(self.approved_at),
                "expected_cash_cents": self.expected_cash_cents,
                "actual_cash_cents": self.actual_cash_cents,
                "variance_cents": self.variance_cents,
            })
        return data
