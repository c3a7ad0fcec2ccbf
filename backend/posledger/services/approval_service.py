"""
Approval Workflow

WHY: Stock corrections and drawer cash movements change money/stock outside
of a sale, so they are gated behind pos:approval.grant.

RULES:
- Submitted by a granter: created approved (self-approval), side effect now
- Submitted by anyone else: created pending, no side effect
- approve: pending -> approved, side effect applied exactly once
- reject: pending -> rejected, permanent, no side effect
- Approving or rejecting anything that is not pending raises ConflictError

Side effects:
- InventoryAdjustment: product.stock_quantity += quantity_change
- CashMovement: ShiftLedger.apply_cash_movement on the movement's shift
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import CashMovement, InventoryAdjustment, Product, SaleTransaction, Shift
from ..models.approvals import (
    ADJUSTMENT_REASONS,
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    MOVEMENT_DROP,
    MOVEMENT_TYPES,
)
from ..models.shifts import SHIFT_OPEN
from ..models.sync import ENTITY_CASH_MOVEMENT, ENTITY_INVENTORY_ADJUSTMENT
from ..signals import approval_changed
from ..time_utils import SystemClock
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    require_amount_cents,
    require_choice,
    require_text,
)
from .concurrency import lock_for_update, run_with_retry
from .identity import (
    CAP_APPROVAL_GRANT,
    CAP_REPORTS_VIEW,
    Actor,
    PermissionDeniedError,
    require_actor,
    require_capability,
)
from .shift_service import ShiftLedger
from .sync_service import enqueue

logger = logging.getLogger(__name__)


class ApprovalWorkflow:
    def __init__(self, session=None, *, clock=None, identity=None, shifts: ShiftLedger | None = None):
        self.session = session or db.session
        self.clock = clock or SystemClock()
        self.identity = identity
        self.shifts = shifts or ShiftLedger(self.session, clock=self.clock, identity=identity)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _stamp_approved(self, record, actor: Actor) -> None:
        record.status = APPROVAL_APPROVED
        record.approved_by = actor.id
        record.approved_by_name = actor.name
        record.approved_at = self.clock.now()

    def _stamp_rejected(self, record, actor: Actor, reason: str | None) -> None:
        record.status = APPROVAL_REJECTED
        record.rejected_by = actor.id
        record.rejected_by_name = actor.name
        record.rejected_at = self.clock.now()
        record.rejection_reason = (reason or "").strip() or None

    def _finish(self, record, entity_type: str, action: str) -> None:
        self.session.flush()
        enqueue(entity_type, record.id, {"action": action, entity_type: record.to_dict()},
                session=self.session, clock=self.clock)
        self.session.commit()
        approval_changed.send(self, record=record, action=action)
        logger.info("%s %s %s (status %s)", entity_type, record.id, action, record.status)

    def _lock(self, model, record_id: str):
        record = lock_for_update(self.session.query(model).filter_by(id=record_id)).first()
        if record is None:
            raise NotFoundError(f"{model.__name__} {record_id} not found")
        if record.status != APPROVAL_PENDING:
            raise ConflictError(f"{model.__name__} {record_id} is already {record.status}")
        return record

    # =========================================================================
    # SIDE EFFECTS (exactly once, on entry into approved)
    # =========================================================================

    def _apply_adjustment(self, adjustment: InventoryAdjustment) -> None:
        product = lock_for_update(self.session.query(Product).filter_by(id=adjustment.product_id)).first()
        if product is None:
            raise NotFoundError(f"Product {adjustment.product_id} not found")
        product.stock_quantity = (product.stock_quantity or 0) + adjustment.quantity_change
        product.updated_at = self.clock.now()

    def _apply_movement(self, movement: CashMovement) -> None:
        self.shifts.apply_cash_movement(movement.type, movement.amount_cents, shift_id=movement.shift_id, commit=False)

    # =========================================================================
    # INVENTORY ADJUSTMENTS
    # =========================================================================

    def submit_inventory_adjustment(self, product_id: str, quantity_change, reason: str, notes: str) -> InventoryAdjustment:
        """
        Request a stock change (negative for reductions).

        Raises:
            ValidationError: zero change, unknown reason, missing notes
            NotFoundError: unknown product
        """
        actor = require_actor(self.identity)
        quantity_change = coerce_int(quantity_change, "quantity_change")
        if quantity_change == 0:
            raise ValidationError("quantity_change must not be zero")
        require_choice(reason, "reason", ADJUSTMENT_REASONS)
        notes = require_text(notes, "notes", max_length=2000)

        def _op():
            product = self.session.get(Product, product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")

            adjustment = InventoryAdjustment(
                product_id=product.id,
                product_name=product.name,
                location_id=actor.location_id,
                quantity_change=quantity_change,
                reason=reason,
                notes=notes,
                created_by=actor.id,
                created_by_name=actor.name,
                created_at=self.clock.now(),
                status=APPROVAL_PENDING,
            )
            self.session.add(adjustment)

            if actor.has_permission(CAP_APPROVAL_GRANT):
                self._stamp_approved(adjustment, actor)
                self._apply_adjustment(adjustment)

            self._finish(adjustment, ENTITY_INVENTORY_ADJUSTMENT, "submitted")
            return adjustment

        return run_with_retry(_op, session=self.session)

    def approve_adjustment(self, adjustment_id: str) -> InventoryAdjustment:
        actor = require_capability(self.identity, CAP_APPROVAL_GRANT)

        def _op():
            adjustment = self._lock(InventoryAdjustment, adjustment_id)
            self._stamp_approved(adjustment, actor)
            self._apply_adjustment(adjustment)
            self._finish(adjustment, ENTITY_INVENTORY_ADJUSTMENT, "approved")
            return adjustment

        return run_with_retry(_op, session=self.session)

    def reject_adjustment(self, adjustment_id: str, reason: str | None = None) -> InventoryAdjustment:
        actor = require_capability(self.identity, CAP_APPROVAL_GRANT)

        def _op():
            adjustment = self._lock(InventoryAdjustment, adjustment_id)
            self._stamp_rejected(adjustment, actor, reason)
            self._finish(adjustment, ENTITY_INVENTORY_ADJUSTMENT, "rejected")
            return adjustment

        return run_with_retry(_op, session=self.session)

    def list_adjustments(self, location_id: str | None = None, status: str | None = None) -> list[InventoryAdjustment]:
        query = self.session.query(InventoryAdjustment)
        if location_id:
            query = query.filter_by(location_id=location_id)
        if status:
            query = query.filter_by(status=status)
        return query.order_by(InventoryAdjustment.created_at.desc()).all()

    # =========================================================================
    # CASH MOVEMENTS
    # =========================================================================

    def submit_cash_movement(self, movement_type: str, amount_cents, reason: str) -> CashMovement:
        """
        Request a drawer <-> safe cash movement against the actor's open shift.

        Raises:
            ValidationError: unknown type, non-positive amount, missing reason
            ConflictError: actor has no open shift
        """
        actor = require_actor(self.identity)
        require_choice(movement_type, "movement type", MOVEMENT_TYPES)
        amount = require_amount_cents(amount_cents, "amount_cents", allow_zero=False)
        reason = require_text(reason, "reason")

        def _op():
            shift = self.shifts.current_shift(actor)
            if shift is None:
                raise ConflictError("No open shift")

            is_drop = movement_type == MOVEMENT_DROP
            movement = CashMovement(
                shift_id=shift.id,
                type=movement_type,
                amount_cents=amount,
                from_location="register" if is_drop else "safe",
                to_location="safe" if is_drop else "register",
                reason=reason,
                created_by=actor.id,
                created_by_name=actor.name,
                created_at=self.clock.now(),
                status=APPROVAL_PENDING,
            )
            self.session.add(movement)

            if actor.has_permission(CAP_APPROVAL_GRANT):
                self._stamp_approved(movement, actor)
                self.session.flush()
                self._apply_movement(movement)

            self._finish(movement, ENTITY_CASH_MOVEMENT, "submitted")
            return movement

        return run_with_retry(_op, session=self.session)

    def approve_cash_movement(self, movement_id: str) -> CashMovement:
        """
        Approve a pending movement and apply it to its shift.

        ConflictError if the shift has closed in the meantime; nothing changes.
        """
        actor = require_capability(self.identity, CAP_APPROVAL_GRANT)

        def _op():
            movement = self._lock(CashMovement, movement_id)
            self._stamp_approved(movement, actor)
            self._apply_movement(movement)
            self._finish(movement, ENTITY_CASH_MOVEMENT, "approved")
            return movement

        return run_with_retry(_op, session=self.session)

    def reject_cash_movement(self, movement_id: str, reason: str | None = None) -> CashMovement:
        actor = require_capability(self.identity, CAP_APPROVAL_GRANT)

        def _op():
            movement = self._lock(CashMovement, movement_id)
            self._stamp_rejected(movement, actor, reason)
            self._finish(movement, ENTITY_CASH_MOVEMENT, "rejected")
            return movement

        return run_with_retry(_op, session=self.session)

    def list_cash_movements(self, shift_id: str | None = None, status: str | None = None,
                            limit: int = 20) -> list[CashMovement]:
        query = self.session.query(CashMovement)
        if shift_id:
            query = query.filter_by(shift_id=shift_id)
        if status:
            query = query.filter_by(status=status)
        return query.order_by(CashMovement.created_at.desc()).limit(limit).all()

    # =========================================================================
    # SUPERVISOR DASHBOARD
    # =========================================================================

    def dashboard(self, location_id: str | None = None, since: datetime | None = None) -> dict:
        """
        Sales since `since` (default: start of today), pending approvals and
        open shifts at the location.
        """
        actor = require_actor(self.identity)
        if not (actor.has_permission(CAP_REPORTS_VIEW) or actor.has_permission(CAP_APPROVAL_GRANT)):
            raise PermissionDeniedError(CAP_REPORTS_VIEW)

        location_id = location_id or actor.location_id
        if since is None:
            since = self.clock.now().replace(hour=0, minute=0, second=0, microsecond=0)

        transactions = self.session.query(SaleTransaction).filter(
            SaleTransaction.offline_created_at >= since
        ).all()

        pending_adjustments = self.session.query(InventoryAdjustment).filter_by(
            location_id=location_id, status=APPROVAL_PENDING
        ).count()
        pending_movements = self.session.query(CashMovement).join(
            Shift, Shift.id == CashMovement.shift_id
        ).filter(
            Shift.location_id == location_id,
            CashMovement.status == APPROVAL_PENDING,
        ).count()

        open_shifts = self.session.query(Shift).filter_by(
            location_id=location_id, status=SHIFT_OPEN
        ).order_by(Shift.opened_at).all()

        return {
            "location_id": location_id,
            "since": since,
            "sales_count": len(transactions),
            "sales_total_cents": sum(t.payment_amount_cents for t in transactions),
            "pending_adjustments": pending_adjustments,
            "pending_cash_movements": pending_movements,
            "open_shifts": open_shifts,
        }
