"""
Shift Ledger

WHY: Cashier accountability. A shift opens with a counted float, accrues cash
sales and approved cash movements into expected cash, and closes with a
counted drawer and a recorded variance.

DESIGN PRINCIPLES:
- One open shift per (user, location) at a time
- expected_cash_cents changes only through accrue_sale / apply_cash_movement
- X reports are repeatable snapshots; a Z report closes the shift
- Closed shifts are immutable except for sync status
- Every accrual re-reads the shift under its version check (see concurrency)
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Register, SaleTransaction, Shift, ShiftReport
from ..models.approvals import MOVEMENT_DROP, MOVEMENT_TYPES
from ..models.sales import PAYMENT_BANK_TRANSFER, PAYMENT_CARD, PAYMENT_CASH, PAYMENT_MOBILE
from ..models.shifts import REPORT_X, REPORT_Z, SHIFT_CLOSED, SHIFT_OPEN
from ..models.sync import ENTITY_SHIFT
from ..signals import shift_changed
from ..time_utils import SystemClock
from ..validation import ConflictError, NotFoundError, require_amount_cents, require_choice
from .concurrency import lock_for_update, run_with_retry
from .identity import (
    CAP_SHIFT_CLOSE,
    CAP_SHIFT_OPEN,
    CAP_SHIFT_XREPORT,
    CAP_SHIFT_ZREPORT,
    Actor,
    require_actor,
    require_capability,
)
from .sync_service import enqueue

logger = logging.getLogger(__name__)


class ShiftLedger:
    def __init__(self, session=None, *, clock=None, identity=None):
        self.session = session or db.session
        self.clock = clock or SystemClock()
        self.identity = identity

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def current_shift(self, actor: Actor | None = None) -> Shift | None:
        """Open shift of the actor at the actor's location, if any."""
        actor = actor or require_actor(self.identity)
        return self.session.query(Shift).filter_by(
            opened_by=actor.id,
            location_id=actor.location_id,
            status=SHIFT_OPEN,
        ).first()

    def get(self, shift_id: str) -> Shift:
        shift = self.session.get(Shift, shift_id)
        if shift is None:
            raise NotFoundError(f"Shift {shift_id} not found")
        return shift

    def list_shifts(self, location_id: str | None = None, status: str | None = None, limit: int = 50) -> list[Shift]:
        query = self.session.query(Shift)
        if location_id:
            query = query.filter_by(location_id=location_id)
        if status:
            query = query.filter_by(status=status)
        return query.order_by(Shift.opened_at.desc()).limit(limit).all()

    def _lock_actor_shift(self, actor: Actor) -> Shift:
        shift = lock_for_update(self.session.query(Shift).filter_by(
            opened_by=actor.id,
            location_id=actor.location_id,
            status=SHIFT_OPEN,
        )).first()
        if shift is None:
            raise ConflictError("No open shift")
        return shift

    def _lock_open_shift(self, shift_id: str) -> Shift:
        shift = lock_for_update(self.session.query(Shift).filter_by(id=shift_id)).first()
        if shift is None:
            raise NotFoundError(f"Shift {shift_id} not found")
        if shift.status != SHIFT_OPEN:
            raise ConflictError("Shift is not open")
        return shift

    def _commit(self, shift: Shift, action: str, commit: bool) -> None:
        if commit:
            self.session.commit()
            shift_changed.send(self, shift=shift, action=action)
        else:
            self.session.flush()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def open_shift(self, register_id: str, opening_float_cents) -> Shift:
        """
        Open a shift for the signed-in actor.

        Raises:
            PermissionDeniedError: actor lacks pos:shift.open
            ConflictError: actor already has an open shift here, or the register is in use
            NotFoundError: unknown register
        """
        actor = require_capability(self.identity, CAP_SHIFT_OPEN)
        opening_float = require_amount_cents(opening_float_cents, "opening_float_cents")

        def _op():
            if self.current_shift(actor) is not None:
                raise ConflictError("Shift already open for this user at this location")

            register = lock_for_update(self.session.query(Register).filter_by(id=register_id)).first()
            if register is None:
                raise NotFoundError(f"Register {register_id} not found")
            if register.location_id != actor.location_id:
                raise ConflictError("Register belongs to another location")
            if register.status == "offline":
                raise ConflictError("Register is out of service")

            busy = self.session.query(Shift).filter_by(register_id=register_id, status=SHIFT_OPEN).first()
            if busy is not None:
                raise ConflictError(f"Register already has an open shift ({busy.id})")

            shift = Shift(
                register_id=register.id,
                location_id=actor.location_id,
                opened_by=actor.id,
                opened_by_name=actor.name,
                opened_at=self.clock.now(),
                opening_float_cents=opening_float,
                expected_cash_cents=opening_float,
                sales_count=0,
                sales_total_cents=0,
                status=SHIFT_OPEN,
            )
            self.session.add(shift)
            register.status = "in_use"
            try:
                self.session.flush()
            except IntegrityError:
                # Lost the race against another open for the same user/location
                self.session.rollback()
                raise ConflictError("Shift already open for this user at this location")

            enqueue(ENTITY_SHIFT, shift.id, {"action": "open", "shift": shift.to_dict()},
                    session=self.session, clock=self.clock)
            self._commit(shift, "open", True)
            logger.info("Shift %s opened on register %s by %s (float %d)",
                        shift.id, register.id, actor.id, opening_float)
            return shift

        return run_with_retry(_op, session=self.session)

    def close_shift(self, actual_cash_cents) -> Shift:
        """
        Close the actor's open shift with the counted drawer amount.

        cash_difference = actual - expected. Immutable afterwards.
        """
        actor = require_capability(self.identity, CAP_SHIFT_CLOSE)
        actual_cash = require_amount_cents(actual_cash_cents, "actual_cash_cents")

        def _op():
            shift = self._lock_actor_shift(actor)
            self._close_locked(shift, actor, actual_cash)
            self._commit(shift, "close", True)
            return shift

        return run_with_retry(_op, session=self.session)

    def _close_locked(self, shift: Shift, actor: Actor, actual_cash: int) -> None:
        shift.closed_by = actor.id
        shift.closed_by_name = actor.name
        shift.closed_at = self.clock.now()
        shift.actual_cash_cents = actual_cash
        shift.cash_difference_cents = actual_cash - shift.expected_cash_cents
        shift.status = SHIFT_CLOSED

        register = self.session.get(Register, shift.register_id)
        if register is not None:
            register.status = "available"

        self.session.flush()
        enqueue(ENTITY_SHIFT, shift.id, {"action": "close", "shift": shift.to_dict()},
                session=self.session, clock=self.clock)
        logger.info("Shift %s closed by %s. Variance: %d", shift.id, actor.id, shift.cash_difference_cents)

    # =========================================================================
    # CASH ACCRUAL
    # =========================================================================

    def accrue_sale(self, amount_cents, *, shift_id: str | None = None, commit: bool = True) -> Shift:
        """
        Record a cash sale against the drawer.

        The only path by which a sale changes expected cash. Called by the
        transaction service for CASH payments, inside its own unit of work
        (commit=False).
        """
        amount = require_amount_cents(amount_cents, "amount_cents")

        def _op():
            if shift_id is not None:
                shift = self._lock_open_shift(shift_id)
            else:
                shift = self._lock_actor_shift(require_actor(self.identity))
            shift.sales_count += 1
            shift.sales_total_cents += amount
            shift.expected_cash_cents += amount
            self._commit(shift, "accrue", commit)
            return shift

        if not commit:
            return _op()
        return run_with_retry(_op, session=self.session)

    def apply_cash_movement(self, movement_type: str, amount_cents, *, shift_id: str | None = None,
                            commit: bool = True) -> Shift:
        """
        Apply an approved cash movement to expected cash.

        - drop: expected cash decreases by amount
        - pickup / float_adjustment: expected cash increases by amount

        Only the approval workflow calls this, at the moment a movement
        becomes approved.
        """
        require_choice(movement_type, "movement type", MOVEMENT_TYPES)
        amount = require_amount_cents(amount_cents, "amount_cents", allow_zero=False)

        def _op():
            if shift_id is not None:
                shift = self._lock_open_shift(shift_id)
            else:
                shift = self._lock_actor_shift(require_actor(self.identity))
            delta = -amount if movement_type == MOVEMENT_DROP else amount
            shift.expected_cash_cents += delta
            self._commit(shift, "cash_movement", commit)
            logger.info("Shift %s cash movement %s %d (expected now %d)",
                        shift.id, movement_type, amount, shift.expected_cash_cents)
            return shift

        if not commit:
            return _op()
        return run_with_retry(_op, session=self.session)

    # =========================================================================
    # REPORTING
    # =========================================================================

    def _aggregate(self, shift: Shift, until: datetime) -> dict:
        """Sales between shift open and `until`, grouped by payment method."""
        rows = self.session.query(
            SaleTransaction.payment_method,
            func.count(SaleTransaction.id),
            func.coalesce(func.sum(SaleTransaction.payment_amount_cents), 0),
        ).filter(
            SaleTransaction.offline_created_at >= shift.opened_at,
            SaleTransaction.offline_created_at <= until,
        ).group_by(SaleTransaction.payment_method).all()

        by_method = {method: (int(count), int(total)) for method, count, total in rows}
        return {
            "sales_count": sum(count for count, _ in by_method.values()),
            "sales_total_cents": sum(total for _, total in by_method.values()),
            "cash_total_cents": by_method.get(PAYMENT_CASH, (0, 0))[1],
            "card_total_cents": by_method.get(PAYMENT_CARD, (0, 0))[1],
            "transfer_total_cents": by_method.get(PAYMENT_BANK_TRANSFER, (0, 0))[1],
            "mobile_total_cents": by_method.get(PAYMENT_MOBILE, (0, 0))[1],
        }

    def generate_x_report(self) -> ShiftReport:
        """Non-destructive snapshot; appended to the shift's X report history."""
        actor = require_capability(self.identity, CAP_SHIFT_XREPORT)

        def _op():
            shift = self._lock_actor_shift(actor)
            now = self.clock.now()
            report = ShiftReport(
                shift=shift,
                kind=REPORT_X,
                generated_at=now,
                generated_by=actor.name,
                **self._aggregate(shift, now),
            )
            self.session.add(report)
            self._commit(shift, "x_report", True)
            logger.info("X report %s for shift %s: %d sales", report.id, shift.id, report.sales_count)
            return report

        return run_with_retry(_op, session=self.session)

    def generate_z_report(self, actual_cash_cents, approved_by: str | None = None) -> ShiftReport:
        """
        Terminal reconciliation: records variance and closes the shift.

        A second call finds no open shift and raises ConflictError; a shift
        never gets two Z reports.
        """
        actor = require_capability(self.identity, CAP_SHIFT_ZREPORT)
        actual_cash = require_amount_cents(actual_cash_cents, "actual_cash_cents")

        def _op():
            shift = self._lock_actor_shift(actor)
            now = self.clock.now()
            report = ShiftReport(
                shift=shift,
                kind=REPORT_Z,
                generated_at=now,
                generated_by=actor.name,
                approved_by=approved_by,
                approved_at=now if approved_by else None,
                expected_cash_cents=shift.expected_cash_cents,
                actual_cash_cents=actual_cash,
                variance_cents=actual_cash - shift.expected_cash_cents,
                **self._aggregate(shift, now),
            )
            self.session.add(report)
            self._close_locked(shift, actor, actual_cash)
            self._commit(shift, "close", True)
            logger.info("Z report %s closed shift %s (variance %d)", report.id, shift.id, report.variance_cents)
            return report

        return run_with_retry(_op, session=self.session)
