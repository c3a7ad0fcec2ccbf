"""Approval-gated inventory adjustments and cash movements."""

import pytest

from posledger.models import CashMovement, InventoryAdjustment, Product, SyncQueueItem
from posledger.models.approvals import APPROVAL_APPROVED, APPROVAL_PENDING, APPROVAL_REJECTED
from posledger.models.sync import ENTITY_CASH_MOVEMENT, ENTITY_INVENTORY_ADJUSTMENT
from posledger.services.identity import Actor, PermissionDeniedError
from posledger.signals import approval_changed
from posledger.validation import ConflictError, NotFoundError, ValidationError


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock_quantity


# =============================================================================
# INVENTORY ADJUSTMENTS
# =============================================================================

def test_cashier_adjustment_is_pending_without_side_effect(services, db_session, as_cashier, product):
    adjustment = services.approvals.submit_inventory_adjustment(product.id, -2, "damage", "Dropped crate")

    assert adjustment.status == APPROVAL_PENDING
    assert adjustment.approved_by is None
    assert adjustment.product_name == "Cola 330ml"
    assert adjustment.location_id == "LOC001"
    assert _stock(db_session, product.id) == 10


def test_approval_applies_stock_change_exactly_once(services, db_session, as_cashier, supervisor, product):
    adjustment = services.approvals.submit_inventory_adjustment(product.id, -2, "damage", "Dropped crate")

    services.identity.sign_in(supervisor)
    approved = services.approvals.approve_adjustment(adjustment.id)

    assert approved.status == APPROVAL_APPROVED
    assert approved.approved_by == "u-super"
    assert approved.approved_by_name == "Sam Supervisor"
    assert approved.approved_at is not None
    assert _stock(db_session, product.id) == 8

    with pytest.raises(ConflictError):
        services.approvals.approve_adjustment(adjustment.id)
    assert _stock(db_session, product.id) == 8


def test_supervisor_submission_is_self_approved(services, db_session, as_supervisor, product):
    adjustment = services.approvals.submit_inventory_adjustment(product.id, 12, "received", "Delivery #88")

    assert adjustment.status == APPROVAL_APPROVED
    assert adjustment.approved_by == "u-super"
    assert adjustment.created_by == "u-super"
    assert _stock(db_session, product.id) == 22


def test_cashier_cannot_approve(services, db_session, as_cashier, product):
    adjustment = services.approvals.submit_inventory_adjustment(product.id, 1, "correction", "Recount")

    with pytest.raises(PermissionDeniedError):
        services.approvals.approve_adjustment(adjustment.id)
    with pytest.raises(PermissionDeniedError):
        services.approvals.reject_adjustment(adjustment.id)
    assert _stock(db_session, product.id) == 10


def test_rejection_is_permanent(services, db_session, as_cashier, supervisor, product):
    adjustment = services.approvals.submit_inventory_adjustment(product.id, -1, "theft", "Missing unit")
    services.identity.sign_in(supervisor)

    rejected = services.approvals.reject_adjustment(adjustment.id, "  Found it on the shelf ")

    assert rejected.status == APPROVAL_REJECTED
    assert rejected.rejected_by == "u-super"
    assert rejected.rejection_reason == "Found it on the shelf"
    with pytest.raises(ConflictError):
        services.approvals.approve_adjustment(adjustment.id)
    with pytest.raises(ConflictError):
        services.approvals.reject_adjustment(adjustment.id)
    assert _stock(db_session, product.id) == 10


@pytest.mark.parametrize("change,reason,notes", [
    (0, "damage", "zero"),
    (1, "gift", "unknown reason"),
    (1, "damage", ""),
    ("x", "damage", "bad number"),
])
def test_adjustment_validation(services, db_session, as_cashier, product, change, reason, notes):
    with pytest.raises(ValidationError):
        services.approvals.submit_inventory_adjustment(product.id, change, reason, notes)
    assert db_session.query(InventoryAdjustment).count() == 0


def test_adjustment_unknown_product(services, db_session, as_cashier):
    with pytest.raises(NotFoundError):
        services.approvals.submit_inventory_adjustment("missing", 1, "correction", "x")


def test_adjustment_lifecycle_is_queued(services, db_session, as_cashier, supervisor, product):
    adjustment = services.approvals.submit_inventory_adjustment(product.id, 3, "return", "Customer return")
    services.identity.sign_in(supervisor)
    services.approvals.approve_adjustment(adjustment.id)

    items = db_session.query(SyncQueueItem).filter_by(
        entity_type=ENTITY_INVENTORY_ADJUSTMENT
    ).order_by(SyncQueueItem.id).all()
    assert [item.payload["action"] for item in items] == ["submitted", "approved"]
    assert items[-1].payload[ENTITY_INVENTORY_ADJUSTMENT]["status"] == APPROVAL_APPROVED


def test_list_adjustments(services, db_session, clock, as_cashier, supervisor, product):
    first = services.approvals.submit_inventory_adjustment(product.id, 1, "correction", "a")
    clock.advance(minutes=1)
    services.approvals.submit_inventory_adjustment(product.id, 2, "correction", "b")
    services.identity.sign_in(supervisor)
    services.approvals.approve_adjustment(first.id)

    assert len(services.approvals.list_adjustments("LOC001")) == 2
    pending = services.approvals.list_adjustments("LOC001", status=APPROVAL_PENDING)
    assert [a.notes for a in pending] == ["b"]
    assert services.approvals.list_adjustments("LOC002") == []


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

def test_cash_movement_requires_open_shift(services, db_session, as_cashier):
    with pytest.raises(ConflictError):
        services.approvals.submit_cash_movement("drop", 5000, "Mid-day drop")
    assert db_session.query(CashMovement).count() == 0


def test_pending_drop_does_not_touch_expected_cash(services, db_session, open_shift):
    movement = services.approvals.submit_cash_movement("drop", 5000, "Mid-day drop")

    assert movement.status == APPROVAL_PENDING
    assert movement.shift_id == open_shift.id
    assert movement.from_location == "register"
    assert movement.to_location == "safe"
    assert services.shifts.get(open_shift.id).expected_cash_cents == 10000


def test_approved_drop_lowers_expected_cash_once(services, db_session, open_shift, supervisor):
    movement = services.approvals.submit_cash_movement("drop", 5000, "Mid-day drop")
    services.identity.sign_in(supervisor)

    services.approvals.approve_cash_movement(movement.id)
    with pytest.raises(ConflictError):
        services.approvals.approve_cash_movement(movement.id)

    assert services.shifts.get(open_shift.id).expected_cash_cents == 5000


def test_pickup_direction(services, db_session, open_shift):
    movement = services.approvals.submit_cash_movement("pickup", 2000, "Change float top-up")
    assert movement.from_location == "safe"
    assert movement.to_location == "register"


def test_self_approved_movement_applies_immediately(services, db_session, as_supervisor, register):
    shift = services.shifts.open_shift(register.id, 10000)

    movement = services.approvals.submit_cash_movement("float_adjustment", 1500, "Extra coins")

    assert movement.status == APPROVAL_APPROVED
    assert services.shifts.get(shift.id).expected_cash_cents == 11500


def test_rejected_movement_has_no_effect(services, db_session, open_shift, supervisor):
    movement = services.approvals.submit_cash_movement("drop", 5000, "Mid-day drop")
    services.identity.sign_in(supervisor)

    rejected = services.approvals.reject_cash_movement(movement.id, "Count again")

    assert rejected.status == APPROVAL_REJECTED
    assert services.shifts.get(open_shift.id).expected_cash_cents == 10000


def test_approving_movement_on_closed_shift_fails(services, db_session, open_shift, supervisor):
    movement = services.approvals.submit_cash_movement("drop", 5000, "Late drop")
    services.shifts.close_shift(10000)
    services.identity.sign_in(supervisor)

    with pytest.raises(ConflictError):
        services.approvals.approve_cash_movement(movement.id)

    db_session.expire_all()
    assert db_session.get(CashMovement, movement.id).status == APPROVAL_PENDING
    assert services.shifts.get(open_shift.id).expected_cash_cents == 10000


@pytest.mark.parametrize("movement_type,amount,reason", [
    ("withdrawal", 100, "x"),
    ("drop", 0, "x"),
    ("drop", -5, "x"),
    ("drop", 100, "  "),
])
def test_cash_movement_validation(services, db_session, open_shift, movement_type, amount, reason):
    with pytest.raises(ValidationError):
        services.approvals.submit_cash_movement(movement_type, amount, reason)


def test_list_cash_movements(services, db_session, open_shift):
    services.approvals.submit_cash_movement("drop", 100, "a")
    services.approvals.submit_cash_movement("pickup", 200, "b")

    assert len(services.approvals.list_cash_movements(open_shift.id)) == 2
    assert len(services.approvals.list_cash_movements(open_shift.id, limit=1)) == 1
    assert services.approvals.list_cash_movements("other-shift") == []


def test_movement_lifecycle_is_queued(services, db_session, open_shift, supervisor):
    movement = services.approvals.submit_cash_movement("drop", 100, "a")
    services.identity.sign_in(supervisor)
    services.approvals.reject_cash_movement(movement.id)

    actions = [item.payload["action"] for item in db_session.query(SyncQueueItem).filter_by(
        entity_type=ENTITY_CASH_MOVEMENT
    ).order_by(SyncQueueItem.id)]
    assert actions == ["submitted", "rejected"]


def test_approval_changed_signal(services, db_session, as_cashier, supervisor, product):
    seen = []

    def receiver(sender, record, action, **kwargs):
        seen.append((record.id, action))

    with approval_changed.connected_to(receiver):
        adjustment = services.approvals.submit_inventory_adjustment(product.id, 1, "correction", "x")
        services.identity.sign_in(supervisor)
        services.approvals.approve_adjustment(adjustment.id)

    assert seen == [(adjustment.id, "submitted"), (adjustment.id, "approved")]


# =============================================================================
# DASHBOARD
# =============================================================================

def test_dashboard(services, db_session, clock, open_shift, supervisor, product):
    services.carts.add_item(product.id, 2)
    services.transactions.complete("CASH", 1000)
    services.approvals.submit_cash_movement("drop", 100, "a")
    services.approvals.submit_inventory_adjustment(product.id, -1, "damage", "x")

    services.identity.sign_in(supervisor)
    summary = services.approvals.dashboard()

    assert summary["location_id"] == "LOC001"
    assert summary["sales_count"] == 1
    assert summary["sales_total_cents"] == 645
    assert summary["pending_adjustments"] == 1
    assert summary["pending_cash_movements"] == 1
    assert [s.id for s in summary["open_shifts"]] == [open_shift.id]


def test_dashboard_requires_reporting_capability(services, db_session, as_cashier):
    with pytest.raises(PermissionDeniedError):
        services.approvals.dashboard()


def test_dashboard_for_reports_viewer(services, db_session):
    services.identity.sign_in(Actor(id="u-view", name="Viewer", location_id="LOC001",
                                    permissions=frozenset({"pos:reports.view"})))
    assert services.approvals.dashboard()["sales_count"] == 0
