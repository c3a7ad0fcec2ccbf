"""
Pytest fixtures for posledger backend tests.

Provides an in-memory terminal (app + services wired with a FixedClock and a
scripted sync transport), a fresh database per test, actors and reference data.
"""

from decimal import Decimal

import pytest

from posledger import create_app
from posledger.extensions import db
from posledger.models import Location, Product, Register
from posledger.services.container import get_services
from posledger.services.identity import (
    CAP_APPROVAL_GRANT,
    CAP_CASH_MOVEMENT,
    CAP_INVENTORY_ADJUST,
    CAP_REPORTS_VIEW,
    CAP_SALE_CREATE,
    CAP_SHIFT_CLOSE,
    CAP_SHIFT_OPEN,
    CAP_SHIFT_XREPORT,
    CAP_SHIFT_ZREPORT,
    Actor,
)
from posledger.services.sync_service import DeliveryOutcome, DeliveryResult
from posledger.time_utils import FixedClock


CASHIER_PERMISSIONS = frozenset({
    CAP_SALE_CREATE,
    CAP_SHIFT_OPEN,
    CAP_SHIFT_CLOSE,
    CAP_SHIFT_XREPORT,
    CAP_SHIFT_ZREPORT,
    CAP_INVENTORY_ADJUST,
    CAP_CASH_MOVEMENT,
})

SUPERVISOR_PERMISSIONS = CASHIER_PERMISSIONS | {CAP_APPROVAL_GRANT, CAP_REPORTS_VIEW}


class ScriptedTransport:
    """
    In-memory stand-in for the remote sync endpoint.

    Every deliver() is recorded. outcomes is consumed first (one per call);
    once empty, default is returned. An Exception in the script is raised.
    """

    def __init__(self):
        self.delivered = []
        self.outcomes = []
        self.default = DeliveryResult(DeliveryOutcome.SUCCESS, status_code=200)
        self.on_deliver = None

    def fail_always(self, error="HTTP 503"):
        self.default = DeliveryResult(DeliveryOutcome.FAILURE, status_code=503, error=error)

    def deliver(self, item):
        self.delivered.append((item.entity_type, item.entity_id, item.payload))
        if self.on_deliver is not None:
            self.on_deliver(item)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(scope='function')
def clock():
    return FixedClock()


@pytest.fixture(scope='function')
def transport():
    return ScriptedTransport()


@pytest.fixture(scope='function')
def app(clock, transport):
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'SYNC_MAX_RETRIES': 5,
            'SYNC_BACKOFF_BASE_SECONDS': 2,
            'SYNC_BACKOFF_MAX_SECONDS': 60,
        },
        clock=clock,
        transport=transport,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables for each test."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def services(app):
    return get_services(app)


@pytest.fixture(scope='function')
def location(db_session):
    loc = Location(id="LOC001", name="Main Store", timezone="UTC")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def register(db_session, location):
    reg = Register(id="REG-LOC001-1", location_id=location.id, name="Front Counter", status="available")
    db_session.add(reg)
    db_session.commit()
    return reg


@pytest.fixture(scope='function')
def second_register(db_session, location):
    reg = Register(id="REG-LOC001-2", location_id=location.id, name="Back Counter", status="available")
    db_session.add(reg)
    db_session.commit()
    return reg


@pytest.fixture(scope='function')
def product(db_session):
    """price 300, tax 7.5%"""
    item = Product(sku="BEV-001", name="Cola 330ml", price_cents=300, tax_rate=Decimal("0.075"),
                   stock_quantity=10, barcode="5000112637922", category_id="beverages")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def other_product(db_session):
    item = Product(sku="BAK-001", name="Croissant", price_cents=180, tax_rate=Decimal("0"),
                   stock_quantity=5, category_id="bakery")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def cashier():
    return Actor(id="u-cashier", name="Casey Cashier", location_id="LOC001", permissions=CASHIER_PERMISSIONS,
                 role="cashier")


@pytest.fixture(scope='function')
def supervisor():
    return Actor(id="u-super", name="Sam Supervisor", location_id="LOC001", permissions=SUPERVISOR_PERMISSIONS,
                 role="manager")


@pytest.fixture(scope='function')
def as_cashier(services, cashier):
    services.identity.sign_in(cashier)
    return cashier


@pytest.fixture(scope='function')
def as_supervisor(services, supervisor):
    services.identity.sign_in(supervisor)
    return supervisor


@pytest.fixture(scope='function')
def open_shift(services, as_cashier, register):
    """Cashier shift with a 100.00 float."""
    return services.shifts.open_shift(register.id, 10000)


def actor_payload(actor: Actor) -> dict:
    """JSON body for PUT /api/session."""
    return actor.to_dict()
