"""Shift lifecycle, cash accrual and X/Z reporting."""

import pytest

from posledger.models import Register, Shift, ShiftReport, SyncQueueItem
from posledger.models.shifts import REPORT_X, REPORT_Z, SHIFT_CLOSED, SHIFT_OPEN
from posledger.models.sync import ENTITY_SHIFT
from posledger.services.identity import Actor, PermissionDeniedError
from posledger.validation import ConflictError, NotFoundError, ValidationError


def _sell(services, product, method="CASH", quantity=2, tendered=1000):
    services.carts.add_item(product.id, quantity)
    return services.transactions.complete(method, tendered)


def test_open_shift_initial_state(services, db_session, open_shift, register):
    assert open_shift.status == SHIFT_OPEN
    assert open_shift.opening_float_cents == 10000
    assert open_shift.expected_cash_cents == 10000
    assert open_shift.sales_count == 0
    assert open_shift.sales_total_cents == 0
    assert open_shift.opened_by == "u-cashier"
    assert open_shift.location_id == "LOC001"
    assert db_session.get(Register, register.id).status == "in_use"

    items = db_session.query(SyncQueueItem).filter_by(entity_type=ENTITY_SHIFT).all()
    assert [item.payload["action"] for item in items] == ["open"]


def test_second_open_for_same_actor_is_rejected(services, db_session, open_shift, second_register):
    with pytest.raises(ConflictError):
        services.shifts.open_shift(second_register.id, 5000)
    assert db_session.query(Shift).filter_by(status=SHIFT_OPEN).count() == 1


def test_register_with_open_shift_is_busy(services, db_session, open_shift, register, supervisor):
    services.identity.sign_in(supervisor)
    with pytest.raises(ConflictError):
        services.shifts.open_shift(register.id, 5000)


def test_open_requires_capability(services, db_session, register):
    services.identity.sign_in(Actor(id="u-guest", name="Guest", location_id="LOC001"))
    with pytest.raises(PermissionDeniedError):
        services.shifts.open_shift(register.id, 5000)
    assert db_session.query(Shift).count() == 0


def test_open_unknown_register(services, db_session, as_cashier, location):
    with pytest.raises(NotFoundError):
        services.shifts.open_shift("REG-NOPE", 5000)


def test_open_rejects_negative_float(services, db_session, as_cashier, register):
    with pytest.raises(ValidationError):
        services.shifts.open_shift(register.id, -100)


def test_current_shift(services, db_session, open_shift):
    assert services.shifts.current_shift().id == open_shift.id


def test_accrue_sale(services, db_session, open_shift):
    shift = services.shifts.accrue_sale(250)
    assert shift.sales_count == 1
    assert shift.sales_total_cents == 250
    assert shift.expected_cash_cents == 10250


@pytest.mark.parametrize("movement,expected", [
    ("drop", 10000 - 3000),
    ("pickup", 10000 + 3000),
    ("float_adjustment", 10000 + 3000),
])
def test_apply_cash_movement(services, db_session, open_shift, movement, expected):
    shift = services.shifts.apply_cash_movement(movement, 3000)
    assert shift.expected_cash_cents == expected
    assert shift.sales_count == 0


def test_ledger_ops_without_open_shift(services, db_session, as_cashier):
    with pytest.raises(ConflictError):
        services.shifts.accrue_sale(100)
    with pytest.raises(ConflictError):
        services.shifts.apply_cash_movement("drop", 100)
    with pytest.raises(ConflictError):
        services.shifts.generate_x_report()
    with pytest.raises(ConflictError):
        services.shifts.generate_z_report(100)
    with pytest.raises(ConflictError):
        services.shifts.close_shift(100)


def test_close_shift_records_variance(services, db_session, clock, open_shift, register, product):
    _sell(services, product)  # +645 cash
    clock.advance(hours=8)

    shift = services.shifts.close_shift(10600)

    assert shift.status == SHIFT_CLOSED
    assert shift.closed_at == clock.now()
    assert shift.closed_by == "u-cashier"
    assert shift.actual_cash_cents == 10600
    assert shift.cash_difference_cents == 10600 - 10645
    assert db_session.get(Register, register.id).status == "available"

    actions = [item.payload["action"] for item in
               db_session.query(SyncQueueItem).filter_by(entity_type=ENTITY_SHIFT).order_by(SyncQueueItem.id)]
    assert actions == ["open", "close"]


def test_closed_shift_rejects_further_ledger_ops(services, db_session, open_shift):
    services.shifts.close_shift(10000)

    with pytest.raises(ConflictError):
        services.shifts.accrue_sale(100, shift_id=open_shift.id)
    with pytest.raises(ConflictError):
        services.shifts.close_shift(10000)

    assert services.shifts.get(open_shift.id).expected_cash_cents == 10000


def test_reopen_after_close(services, db_session, open_shift, register):
    services.shifts.close_shift(10000)
    shift = services.shifts.open_shift(register.id, 5000)
    assert shift.id != open_shift.id
    assert shift.expected_cash_cents == 5000


def test_x_report_is_non_destructive(services, db_session, clock, open_shift, product, other_product):
    _sell(services, product)                                          # CASH 645
    clock.advance(minutes=1)
    _sell(services, other_product, method="CARD", quantity=1, tendered=180)  # CARD 180

    before = services.shifts.get(open_shift.id).to_dict()
    first = services.shifts.generate_x_report()
    clock.advance(minutes=1)
    second = services.shifts.generate_x_report()

    assert first.kind == REPORT_X
    assert first.sales_count == 2
    assert first.sales_total_cents == 825
    assert first.cash_total_cents == 645
    assert first.card_total_cents == 180
    assert first.transfer_total_cents == 0
    assert first.mobile_total_cents == 0
    assert first.generated_by == "Casey Cashier"
    assert second.sales_total_cents == first.sales_total_cents

    shift = services.shifts.get(open_shift.id)
    assert len(shift.x_reports) == 2
    assert shift.z_report is None
    assert shift.status == SHIFT_OPEN
    assert shift.expected_cash_cents == before["expected_cash_cents"]
    assert shift.sales_count == before["sales_count"]


def test_z_report_closes_shift(services, db_session, open_shift, product):
    _sell(services, product)

    report = services.shifts.generate_z_report(10700, approved_by="Sam Supervisor")

    assert report.kind == REPORT_Z
    assert report.expected_cash_cents == 10645
    assert report.actual_cash_cents == 10700
    assert report.variance_cents == 55
    assert report.cash_total_cents == 645
    assert report.approved_by == "Sam Supervisor"
    assert report.approved_at is not None

    shift = services.shifts.get(open_shift.id)
    assert shift.status == SHIFT_CLOSED
    assert shift.cash_difference_cents == 55
    assert shift.z_report.id == report.id


def test_second_z_report_is_rejected(services, db_session, open_shift):
    services.shifts.generate_z_report(10000)

    with pytest.raises(ConflictError):
        services.shifts.generate_z_report(10000)

    assert db_session.query(ShiftReport).filter_by(kind=REPORT_Z).count() == 1


def test_report_window_excludes_sales_before_open(services, db_session, clock, as_cashier, register, product):
    services.carts.add_item(product.id)
    services.transactions.complete("BANK_TRANSFER", 325)
    clock.advance(minutes=10)

    services.shifts.open_shift(register.id, 0)
    report = services.shifts.generate_x_report()

    assert report.sales_count == 0
    assert report.sales_total_cents == 0


def test_list_shifts(services, db_session, clock, open_shift, register):
    services.shifts.close_shift(10000)
    clock.advance(hours=1)
    services.shifts.open_shift(register.id, 2000)

    assert len(services.shifts.list_shifts("LOC001")) == 2
    assert [s.status for s in services.shifts.list_shifts("LOC001", status=SHIFT_OPEN)] == [SHIFT_OPEN]
    assert services.shifts.list_shifts("LOC002") == []
